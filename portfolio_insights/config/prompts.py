"""LLM prompt templates for pipeline nodes."""

# Note: curly braces must be escaped as {{ }} for LangChain templates
JSON_ONLY_INSTRUCTION = """
CRITICAL: Respond with ONLY valid JSON.
- Do NOT include any reasoning or explanation.
- Do NOT use markdown code blocks.
- No text before or after the JSON."""

PORTFOLIO_ANALYZER_PROMPT = """Analyze the structure and characteristics of the following investment portfolio.

HOLDINGS:
{positions_block}

PORTFOLIO OVERVIEW:
{portfolio_block}

MARKET CONTEXT:
{market_context}

Provide the following analysis:
1. Sector distribution
2. Concentration
3. Correlation between holdings
4. Liquidity
5. Valuation level

Keep each point to one or two sentences."""

RISK_ASSESSOR_PROMPT = """Based on the portfolio analysis, assess the portfolio's risks.

PORTFOLIO ANALYSIS:
{portfolio_analysis}

HOLDINGS:
{positions_block}

Identify these risk types:
1. Concentration risk
2. Sector risk
3. Liquidity risk
4. Market risk
5. Single-stock risk

For each risk give a level (low/medium/high), a concrete description and a suggested mitigation."""

OPPORTUNITY_FINDER_PROMPT = """Based on the portfolio overview, look for investment opportunities.

PORTFOLIO OVERVIEW:
{portfolio_block}

CURRENT HOLDINGS:
{symbols_block}

Identify these opportunity types:
1. Diversification (sectors or assets to add)
2. Rebalancing (allocations to adjust)
3. Market timing (based on the current environment)
4. Individual stocks (under- or over-valued holdings)

For each opportunity give a concrete action, the expected return/risk ratio and a time frame."""

INSIGHT_GENERATOR_PROMPT = """Based on the analysis below, generate 3-5 specific investment insights.

PORTFOLIO ANALYSIS:
{portfolio_analysis}

RISK ASSESSMENT:
{risk_assessment}

OPPORTUNITIES:
{opportunities}

Generate these insight types:
1. Risk warnings (1-2)
2. Opportunities (1-2)
3. Optimisation suggestions (1-2)

Every insight needs a short title, a detailed description, a confidence between 70 and 95,
a type (risk/opportunity/suggestion) and related ticker symbols where applicable.

Respond with this JSON structure:
{{
  "insights": [
    {{
      "title": "...",
      "description": "...",
      "confidence": 85,
      "type": "risk",
      "relatedAssets": ["AAPL", "GOOGL"]
    }}
  ]
}}""" + JSON_ONLY_INSTRUCTION

CORRELATION_ANALYZER_PROMPT = """Based on the portfolio analysis, evaluate the correlation between holdings.

PORTFOLIO ANALYSIS:
{portfolio_analysis}

CURRENT HOLDINGS:
{symbols_block}

Identify:
1. Highly correlated groups (correlation > 0.7)
2. Moderately correlated groups (0.3 - 0.7)
3. Weakly correlated groups (< 0.3)"""

SECTOR_ANALYZER_PROMPT = """Based on the portfolio analysis, analyze the sector distribution.

PORTFOLIO ANALYSIS:
{portfolio_analysis}

CURRENT HOLDINGS:
{sectors_block}

Identify:
1. Sector concentration
2. Important sectors that are missing
3. Sector rotation trends"""

LIQUIDITY_ANALYZER_PROMPT = """Based on the portfolio analysis, analyze the liquidity of the holdings.

PORTFOLIO ANALYSIS:
{portfolio_analysis}

CURRENT HOLDINGS:
{liquidity_block}

Evaluate:
1. Overall liquidity level
2. Illiquid holdings
3. Liquidity risk rating"""

RECOMMENDATION_GENERATOR_PROMPT = """Based on the analysis below, generate 3 specific diversification recommendations.

PORTFOLIO ANALYSIS:
{portfolio_analysis}

CORRELATION ANALYSIS:
{correlation_analysis}

SECTOR ANALYSIS:
{sector_analysis}

LIQUIDITY ANALYSIS:
{liquidity_analysis}

Recommend:
1. An asset with low correlation to the current holdings
2. An asset that fills a sector gap
3. A highly liquid asset with growth potential

Each recommendation needs the ticker, the asset name, a suggested amount in USD,
the correlation with current holdings (0-1), a liquidity score (0-100) and the reason.

Respond with this JSON structure:
{{
  "recommendations": [
    {{
      "assetId": "...",
      "assetSymbol": "...",
      "assetName": "...",
      "amount": 5000,
      "correlation": 0.25,
      "liquidityScore": 95,
      "reason": "..."
    }}
  ]
}}""" + JSON_ONLY_INSTRUCTION

MARKET_ANALYST_PROMPT = """Based on the portfolio analysis, analyze the current market environment.

PORTFOLIO ANALYSIS:
{portfolio_analysis}

CURRENT HOLDINGS:
{symbols_block}

MARKET CONTEXT:
{market_context}

Analyze:
1. Macroeconomic impact on the portfolio
2. Sector trends
3. Market sentiment and valuation
4. Recent events that matter

Give concrete, actionable observations."""

ADVICE_GENERATOR_PROMPT = """Based on the analysis below, generate 3 specific strategy recommendations.

PORTFOLIO ANALYSIS:
{portfolio_analysis}

RISK ASSESSMENT:
{risk_assessment}

MARKET OUTLOOK:
{market_outlook}

Generate:
1. One risk management recommendation
2. One allocation optimisation recommendation
3. One market timing recommendation

Each needs a short title, a detailed description and "recommended"
(true when strongly recommended, false when optional).

Respond with this JSON structure:
{{
  "advice": [
    {{
      "title": "...",
      "description": "...",
      "recommended": true
    }}
  ]
}}""" + JSON_ONLY_INSTRUCTION

IMPACT_ANALYZER_PROMPT = """You are a professional investment analyst. Analyze the trade scenario below in depth.

{portfolio_summary}

{scenario_description}

RISK METRIC CHANGES:
{risk_changes}

Cover:
1. Direct impact of the trade on the portfolio
2. What each risk metric change means
3. Concrete investment recommendations
4. Risks to watch
5. Metrics to monitor afterwards

Return a JSON array. Each element describes one dimension:
[
  {{
    "metric": "dimension name",
    "metricKey": "concentration|allocation|correlation|liquidity or null",
    "insight": "analysis",
    "recommendation": "concrete advice"
  }}
]""" + JSON_ONLY_INSTRUCTION
