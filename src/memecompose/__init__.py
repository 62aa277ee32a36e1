"""memecompose — parameter-driven meme video composition.

Turn a short clip plus flat layout parameters into an ffmpeg filter graph
(frame placement, captions, watermark, optional PNG template) and render
it to a fixed-size canvas in a single ffmpeg run.
"""

__version__ = "0.1.0"
