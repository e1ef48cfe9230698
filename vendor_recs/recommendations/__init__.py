"""
Vendor recommendation engine.

Responsibilities:
- Read a wedding's preferences, the vendor catalog and the couple's past
  save/dismiss reactions.
- Score every eligible vendor on six 0-100 factors and aggregate them into a
  weighted match score with a confidence level.
- Explain each match with a reason, highlights and potential concerns.
- Cache ranked results per (wedding, category) and keep them consistent with
  preference and interest changes.
"""
