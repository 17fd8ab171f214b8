"""Application modules.

- post: Post documents and their processing fields
- transcoding: FFmpeg pipeline producing MP3 and HLS outputs
- job: Retry orchestration, scans, webhooks and background tasks
"""
