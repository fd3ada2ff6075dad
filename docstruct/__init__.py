"""Document structuring service.

Turns uploaded document images and PDFs into structured field and table
data by chaining Tesseract OCR with an LLM structuring step, tracking each
attempt as a persisted run.
"""
