"""
Tweetcast - tweets to podcast job pipeline.

A backend that turns a social-media source into a finished audio podcast:
- Four independently retryable job types (fetch, analyze, synthesize, assemble)
- Durable job store with leasing, priorities and retry backoff
- Bounded-concurrency worker executors, one per job type
- Integration with Twitter, OpenAI, ElevenLabs, S3 and ffmpeg
"""

__version__ = "0.1.0"
