"""Upsert the default occurrence-code catalog."""

from settings import settings
import psycopg

# (code, description, tipo, processo, finalizadora)
DEFAULT_CODES = [
    (1, 'Coleta realizada', 'coleta', 'coleta', False),
    (2, 'Em trânsito', 'status', 'transporte', False),
    (3, 'Saiu para entrega', 'entrega', 'entrega', False),
    (4, 'Entregue', 'entrega', 'finalizacao', True),
    (5, 'Tentativa de entrega', 'entrega', 'entrega', False),
    (6, 'Devolvido', 'ocorrencia', 'cancelamento', True),
    (7, 'Extraviado', 'ocorrencia', 'cancelamento', True),
    (8, 'Avariado', 'ocorrencia', 'transporte', False),
    (9, 'Aguardando retirada', 'entrega', 'entrega', False),
    (99, 'Outros eventos', 'informativo', 'informativo', False),
]

UPSERT = '''
INSERT INTO occurrence_codes (code, description, tipo, processo, finalizadora, api)
VALUES (%s, %s, %s, %s, %s, true)
ON CONFLICT (code) DO UPDATE SET
    description = EXCLUDED.description,
    tipo = EXCLUDED.tipo,
    processo = EXCLUDED.processo,
    finalizadora = EXCLUDED.finalizadora,
    api = EXCLUDED.api,
    updated_at = now()
'''

with psycopg.connect(settings.db_url, connect_timeout=settings.db_connect_timeout) as conn:
    with conn.cursor() as cur:
        cur.executemany(UPSERT, DEFAULT_CODES)
    conn.commit()
print('Seeded', len(DEFAULT_CODES), 'occurrence codes')
