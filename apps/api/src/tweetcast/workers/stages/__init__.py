"""
Stage routines, one per job type.
"""

from tweetcast.workers.stages.analyze_emotions import AnalyzeEmotionsStage
from tweetcast.workers.stages.assemble_podcast import AssemblePodcastStage
from tweetcast.workers.stages.base import StageRoutine
from tweetcast.workers.stages.fetch_tweets import FetchTweetsStage
from tweetcast.workers.stages.generate_audio import GenerateAudioStage

__all__ = [
    "AnalyzeEmotionsStage",
    "AssemblePodcastStage",
    "FetchTweetsStage",
    "GenerateAudioStage",
    "StageRoutine",
]
