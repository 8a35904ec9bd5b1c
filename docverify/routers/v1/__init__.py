"""v1 router package: all /api/v1/* endpoints live here.

Files:
  documents.py  - verification state, verify / reverify queueing, expiry sweep

Rule: Routers only handle HTTP (request parsing, response shaping).
      All business logic delegates to docverify/services/.
"""
