"""ata2: Ask the Terminal Anything², a streaming chat client for your terminal."""

__version__ = "2.0.0"
