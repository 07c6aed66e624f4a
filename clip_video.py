#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
clip_video.py

Extract named clips from a YouTube video using yt-dlp and ffmpeg.
Supports:
- A JSON run request (--input request.json)
- Inline clips (--url URL --clip "Intro=00:00:05-00:00:20")
- Resuming an interrupted run for the same video

Usage:
    python clip_video.py --input request.json
    python clip_video.py --url https://youtu.be/dQw4w9WgXcQ --clip "Chorus=0:43-1:05" --quality 480p
    python clip_video.py --health-check
"""

import sys

from youtube_clipper.cli import main


if __name__ == "__main__":
    sys.exit(main())
