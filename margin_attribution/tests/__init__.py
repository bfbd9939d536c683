'''
Margin Attribution Test Suite

Test Modules:
-------------
- test_attribution.py: Calculator tests
  - Worked three-component portfolio
  - Tie-out, weight sums, order and scale invariance
  - Error taxonomy (empty, duplicate, zero revenue, non-finite, tie-out)
  - Driver ranking, group roll-up, DataFrame output

- test_ingestion.py: Component table ingestion tests
  - Alias resolution and required columns
  - Numeric, id and revenue validation
  - Profit derived from cost
  - CSV bytes, paths and uploads

- test_api.py: HTTP contract tests
  - Attribution, upload, drivers and groups endpoints
  - 422 / 500 error mapping

- test_jobs.py: Memo job tests
  - Memo sections and figures
  - Command line exit codes

Running Tests:
--------------
    pip install -e ".[test]"
    pytest margin_attribution/tests -v

Configuration:
--------------
See conftest.py for shared fixtures and test configuration.
'''

__all__ = []
