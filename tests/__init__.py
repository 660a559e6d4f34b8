"""
Unit tests for the carbon_spend engine and the footprint API.

No network or database access: every test builds its records in memory or
reads the bundled demo files under carbon_spend/data/.
"""
