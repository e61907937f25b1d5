"""Top-level application package for the PDF receipt extraction API.

This package contains everything required to run the FastAPI backend:
database models, Pydantic schemas, the extraction pipeline (PDF
rasterization, OCR, regex and LLM field extraction), a Dramatiq worker
for background processing, and the API routers.

To run the API locally you can execute:

```bash
uvicorn receipt_api.api.main:app --reload
```

This will serve the FastAPI application on http://localhost:8000 and
automatically reload on code changes. The default configuration uses
a local SQLite database stored in ``database/receipts.db``. You can
override configuration values using environment variables or a ``.env``
file at the project root.
"""

__version__ = "1.0.0"
