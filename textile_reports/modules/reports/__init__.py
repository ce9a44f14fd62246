"""
Reports Module - Textile ERP

Report aggregation engine over the transactional records kept by the other
modules: ledger entries, stock movements, machine logs and invoices.

This module does NOT create tables. It reads the existing tables, scoped by
tenant and date window, and returns summarized reports as structured data.

Report kinds:
- Financial: trial balance, profit & loss, balance sheet, cash flow
- Inventory: stock valuation, low stock alerts, inventory movement
- Sales: sales by region, product performance
- Production: machine efficiency

Architecture Pattern: Service Layer
- routers/ -> FastAPI endpoints, engine failures mapped to HTTP status codes
- services/ -> reader, classifier, aggregator, builders, validator, cache, engine
- schemas/ -> Pydantic models for report options and results
- utils/ -> Decimal rounding and percentage helpers
- tasks.py -> Celery task for background generation
"""

__version__ = "1.0.0"
__description__ = "Report aggregation engine for the textile ERP"
