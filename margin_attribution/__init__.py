"""
Margin Attribution Package.

Decomposes the period-over-period change in a portfolio's aggregate profit
margin into per-component performance and mix effects, with a tie-out check
that the effects reproduce the observed change.

Subpackages:
    - api: FastAPI route handlers
    - core: Configuration and dependencies
    - models: Pydantic schemas and enums
    - services: Attribution calculator, ingestion and error taxonomy
    - jobs: Text memo generation and its command line entry point
"""

__version__ = "1.0.0"
