"""PAM (Python Audio Merger)

Core package for merging an ordered set of audio files into one MP3 or
chaptered M4B, using ffmpeg/ffprobe as the processing engine.
"""

__all__ = [
    "__version__",
]

# Keep in sync with pyproject.toml
__version__ = "0.1.0"
