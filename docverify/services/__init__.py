"""Services package: all business logic lives here, never in routers.

Files:
  fetcher.py          - document download (httpx)
  text_extraction.py  - PDF text layer / rasterize + OCR, image OCR
  parser.py           - regex field extraction and date parsing
  llm_service.py      - language-model fallback extraction (Ollama, OpenAI)
  merger.py           - regex + model field merge
  decision.py         - confidence scoring and the verification decision
  document_store.py   - persistence collaborator over the repositories
  notifications.py    - owner email / in-app notifications
  orchestrator.py     - background queue and per-document pipeline
  document_service.py - reverify and expiry lifecycle operations

Rule: routers call services, services call repositories, repositories call the DB.
      No SQLAlchemy queries in routers. No FastAPI imports in services.
"""
