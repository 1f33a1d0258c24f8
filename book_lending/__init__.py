"""Book Lending - Core Application Package

This package contains:
- HTTP API endpoints (api.py)
- CLI interface (main.py)
- Library facade wiring the components together (library.py)
- Catalog, borrower registry and lending engine (catalog.py, borrowers.py, lending.py)
- Read views (views.py)
- Data models (book.py, borrower.py, loan.py)
- Database layer (database.py)
"""
