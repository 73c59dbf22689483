"""
Knowledge retrieval for the instruction context engine.

  - Keyword layer: immutable index + declarative trigger rule table
  - Vector layer: similarity backends queried under a bounded timeout
  - Detector: merges both layers, deduplicates and caps fragments
"""
