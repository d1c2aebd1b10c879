"""
Tools package for the expense capture pipeline.

- Extraction: transcription, text extraction and receipt parsing
"""
