"""Transcoding module for audio encoding and HLS packaging.

Implements the FFmpeg-based pipeline that turns a post's raw audio into a
192 kbps MP3 and a 10 second, 128 kbps HLS segment set.
"""
