"""Portfolio Insights Engine.

Runs model-backed analysis pipelines over a portfolio snapshot and returns
structured insights, diversification recommendations, strategy advice and
trade scenario impact.
"""

__version__ = "0.1.0"
