"""Service layer: storage, validation, OCR, extraction and persistence."""
