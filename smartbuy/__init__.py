"""SmartBuy Suggest: purchase-propensity and household-frequency scoring.

This package ranks candidate grocery products for a household so a shopping
app can surface smart suggestions.

Modules:
    api: FastAPI application and REST API endpoints
    recommender: Feature extraction, logistic model, household frequency tracking
"""

__version__ = "0.1.0"
