"""notevault: notes with client-side encrypted text and attachments."""

__version__ = "0.1.0"
