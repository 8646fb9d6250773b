"""
Integración con Zotero Web API v3 (biblioteca downstream del espejo).
"""
