"""
Services used after a call has been bridged.

Key components:
- summarizer: Turns a finished call's question/answer log into a structured
  CallSummary (OpenAI JSON extraction, or a regex heuristic when no model is
  available) and hands it to a SummaryStore.
"""
