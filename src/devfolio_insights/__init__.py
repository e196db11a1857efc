"""devfolio-insights: analytics and trajectory engine for developer portfolios."""

__version__ = "1.0.0"
