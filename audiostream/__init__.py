"""Audiostream Processor.

Finds posts with uploaded raw audio and no MP3 rendition, and transcodes them
into a 192 kbps MP3 plus an HLS segment set stored alongside the post.

Modules:
    - core: Configuration, logging, metrics, Appwrite, storage, Redis, Celery
    - modules.post: Post model and repository
    - modules.transcoding: Workspace, FFmpeg engine, playlist rewrite, pipeline
    - modules.job: Retry orchestration, job discovery, triggers and tasks
"""

__version__ = "0.1.0"
