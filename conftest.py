"""Root pytest configuration (kept intentionally minimal).

The ``receipt_api`` package lives at the repository root, so it is
importable without path manipulation. Test environment setup lives in
``tests/conftest.py``.
"""

# Intentionally no path mangling here.
