"""
Centralized constants for the SECOP loader.

Column limits mirror the widths of the target schema; import from here
instead of redefining them in the mapper or the DDL.
"""

# Default sizes for a bulk-load window
DEFAULT_BATCH_SIZE = 2000
DEFAULT_POOL_SIZE = 4
DEFAULT_FLUSH_THRESHOLD = 500        # pending lookup rows before a multi-row insert
DEFAULT_CACHE_SIZE = 50_000          # entries per entity kind
DEFAULT_BUSY_TIMEOUT_MS = 5_000
PROGRESS_EVERY_ROWS = 10_000

# Full error detail is logged for the first few row failures only
MAX_LOGGED_ROW_ERRORS = 5

# SQLite caps bound parameters per statement (32766 since 3.32)
MAX_SQL_PARAMS = 900                 # per IN (...) lookup
MAX_INSERT_PARAMS = 32_000           # per multi-row insert

# Tokens accepted as boolean true (compared lower-cased and trimmed)
TRUE_TOKENS = frozenset({'si', 'sí', 'true', '1', 'yes'})

# Responsible-party roles, in the order they appear in the source file
ROLE_SUPERVISOR = 'Supervisor'
ROLE_SPENDING_AUTHORITY = 'OrdenadorGasto'
ROLE_PAYMENT_AUTHORITY = 'OrdenadorPago'

# Organization (Entidad)
ENTITY_NAME_LEN = 300
ENTITY_NIT_LEN = 20
ENTITY_REGION_LEN = 120              # departamento, ciudad, orden, sector, rama
ENTITY_LOCATION_LEN = 400

# Supplier (Proveedor)
SUPPLIER_CODE_LEN = 50
SUPPLIER_DOCTYPE_LEN = 100
SUPPLIER_DOCUMENT_LEN = 30
SUPPLIER_NAME_LEN = 300

# Legal representative
REP_NAME_LEN = 200
REP_NATIONALITY_LEN = 120
REP_ADDRESS_LEN = 250
REP_SHORT_LEN = 50                   # id type, id number, gender

# Contract text columns: attribute -> max length
CONTRACT_TEXT_LIMITS = {
    'proceso_de_compra': 80,
    'id_contrato': 80,
    'referencia_del_contrato': 120,
    'estado_contrato': 80,
    'codigo_de_categoria_principal': 32,
    'descripcion_del_proceso': 1000,
    'tipo_de_contrato': 120,
    'modalidad_de_contratacion': 200,
    'justificacion_modalidad_de': 1000,
    'condiciones_de_entrega': 500,
    'origen_de_los_recursos': 200,
    'destino_gasto': 200,
    'estado_bpin': 80,
    'codigo_bpin': 50,
    'anno_bpin': 10,
    'puntos_del_acuerdo': 300,
    'pilares_del_acuerdo': 300,
    'urlproceso': 500,
    'objeto_del_contrato': 1000,
    'duracion_del_contrato': 200,
}

# Bank details
BANK_NAME_LEN = 200
BANK_SHORT_LEN = 50

# Responsible parties
RESPONSIBLE_NAME_LEN = 200
RESPONSIBLE_DOC_LEN = 40
