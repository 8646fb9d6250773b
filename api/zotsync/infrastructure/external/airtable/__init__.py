"""
Integración con Airtable (fuente upstream del espejo).

- airtable_client: cliente REST con backoff, páginas lazy y updates por chunk
- table_mappings: traducción fields de Airtable -> payload del webhook
"""
