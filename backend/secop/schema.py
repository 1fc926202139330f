"""
SECOP Normalized Database Schema
================================
Eight tables loaded from the SECOP II electronic-contracts export.

Tables:
- entidad: buying organizations, natural key nit_entidad
- proveedor: suppliers, natural key clave_proveedor (document, code or name)
- representante_legal: legal representatives of an organization
- contrato: main fact table, natural key id_contrato
- contrato_finanzas: contract financial figures (0..1 per contract)
- contrato_recursos: funding sources (0..1 per contract)
- contrato_bancario: banking details (0..1 per contract)
- contrato_responsable: supervisor / spending / payment authorities (0..3 per contract)

Natural keys carry UNIQUE constraints so every insert can be INSERT OR IGNORE.
"""

from datetime import date, datetime
from typing import Any, Iterable, Mapping, NamedTuple, Tuple

import aiosqlite
import structlog

logger = structlog.get_logger("secop.schema")


class LookupTable(NamedTuple):
    """A deduplicated lookup table addressed by a natural key."""
    name: str
    id_column: str
    key_column: str
    columns: Tuple[str, ...]


ENTITY_TABLE = LookupTable(
    name='entidad',
    id_column='entidad_id',
    key_column='nit_entidad',
    columns=(
        'nombre_entidad', 'nit_entidad', 'departamento', 'ciudad',
        'localizacion', 'orden', 'sector', 'rama',
        'entidad_centralizada', 'codigo_entidad',
    ),
)

SUPPLIER_TABLE = LookupTable(
    name='proveedor',
    id_column='proveedor_id',
    key_column='clave_proveedor',
    columns=(
        'clave_proveedor', 'codigo_proveedor', 'tipodocproveedor',
        'documento_proveedor', 'proveedor_adjudicado', 'es_grupo', 'es_pyme',
    ),
)

CONTRACT_COLUMNS = (
    'entidad_id', 'proveedor_id', 'proceso_de_compra', 'id_contrato',
    'referencia_del_contrato', 'estado_contrato', 'codigo_de_categoria_principal',
    'descripcion_del_proceso', 'tipo_de_contrato', 'modalidad_de_contratacion',
    'justificacion_modalidad_de', 'fecha_de_firma', 'fecha_de_inicio_del_contrato',
    'fecha_de_fin_del_contrato', 'fecha_de_inicio_de_ejecucion', 'fecha_de_fin_de_ejecucion',
    'condiciones_de_entrega', 'habilita_pago_adelantado', 'liquidacion',
    'obligacion_ambiental', 'obligaciones_postconsumo', 'reversion',
    'origen_de_los_recursos', 'destino_gasto', 'estado_bpin', 'codigo_bpin',
    'anno_bpin', 'espostconflicto', 'dias_adicionados', 'puntos_del_acuerdo',
    'pilares_del_acuerdo', 'urlproceso', 'ultima_actualizacion',
    'fecha_inicio_liquidacion', 'fecha_fin_liquidacion', 'objeto_del_contrato',
    'duracion_del_contrato', 'el_contrato_puede_ser_prorrogado',
    'fecha_de_notificacion_de_prorrogacion',
)

FINANCE_COLUMNS = (
    'valor_del_contrato', 'valor_de_pago_adelantado', 'valor_facturado',
    'valor_pendiente_de_pago', 'valor_pagado', 'valor_amortizado',
    'valor_pendiente_de_amortizacion', 'valor_pendiente_de_ejecucion',
    'saldo_cdp', 'saldo_vigencia',
)

RESOURCES_COLUMNS = (
    'presupuesto_general_de_la_nacion_pgn', 'sistema_general_de_participaciones',
    'sistema_general_de_regalias', 'recursos_propios_alcaldias_gobernaciones_resguardos',
    'recursos_de_credito', 'recursos_propios',
)

BANK_COLUMNS = ('nombre_del_banco', 'tipo_de_cuenta', 'numero_de_cuenta')

RESPONSIBLE_COLUMNS = ('rol', 'nombre', 'tipo_documento', 'numero_documento')

REPRESENTATIVE_COLUMNS = (
    'nombre_representante_legal', 'nacionalidad_representante_legal',
    'domicilio_representante_legal', 'tipo_de_identificacion_representante_legal',
    'identificacion_representante_legal', 'genero_representante_legal',
)

TABLE_NAMES = (
    'entidad', 'representante_legal', 'proveedor', 'contrato',
    'contrato_finanzas', 'contrato_recursos', 'contrato_bancario', 'contrato_responsable',
)


SCHEMA_DDL = """
-- =============================================================================
-- LOOKUP TABLES
-- =============================================================================

CREATE TABLE IF NOT EXISTS entidad (
    entidad_id INTEGER PRIMARY KEY AUTOINCREMENT,
    nombre_entidad VARCHAR(300),
    nit_entidad VARCHAR(20) NOT NULL UNIQUE,
    departamento VARCHAR(120),
    ciudad VARCHAR(120),
    localizacion VARCHAR(400),
    orden VARCHAR(120),
    sector VARCHAR(120),
    rama VARCHAR(120),
    entidad_centralizada INTEGER DEFAULT 0,
    codigo_entidad NUMERIC,
    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
);

CREATE TABLE IF NOT EXISTS proveedor (
    proveedor_id INTEGER PRIMARY KEY AUTOINCREMENT,
    clave_proveedor VARCHAR(300) NOT NULL UNIQUE,
    codigo_proveedor VARCHAR(50),
    tipodocproveedor VARCHAR(100),
    documento_proveedor VARCHAR(30),
    proveedor_adjudicado VARCHAR(300),
    es_grupo INTEGER DEFAULT 0,
    es_pyme INTEGER DEFAULT 0,
    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
);

CREATE INDEX IF NOT EXISTS idx_proveedor_documento ON proveedor(documento_proveedor);

CREATE TABLE IF NOT EXISTS representante_legal (
    representante_id INTEGER PRIMARY KEY AUTOINCREMENT,
    entidad_id INTEGER NOT NULL,
    nombre_representante_legal VARCHAR(200) NOT NULL,
    nacionalidad_representante_legal VARCHAR(120),
    domicilio_representante_legal VARCHAR(250),
    tipo_de_identificacion_representante_legal VARCHAR(50),
    identificacion_representante_legal VARCHAR(50),
    genero_representante_legal VARCHAR(50),
    FOREIGN KEY (entidad_id) REFERENCES entidad(entidad_id)
);

-- NULLs are distinct in plain UNIQUE constraints; fold them so the full tuple dedups
CREATE UNIQUE INDEX IF NOT EXISTS uq_representante_legal ON representante_legal (
    entidad_id,
    nombre_representante_legal,
    IFNULL(nacionalidad_representante_legal, ''),
    IFNULL(domicilio_representante_legal, ''),
    IFNULL(tipo_de_identificacion_representante_legal, ''),
    IFNULL(identificacion_representante_legal, ''),
    IFNULL(genero_representante_legal, '')
);

-- =============================================================================
-- CONTRACT FACT TABLE
-- =============================================================================

CREATE TABLE IF NOT EXISTS contrato (
    contrato_id INTEGER PRIMARY KEY AUTOINCREMENT,
    entidad_id INTEGER NOT NULL,
    proveedor_id INTEGER,
    proceso_de_compra VARCHAR(80),
    id_contrato VARCHAR(80) NOT NULL UNIQUE,
    referencia_del_contrato VARCHAR(120),
    estado_contrato VARCHAR(80),
    codigo_de_categoria_principal VARCHAR(32),
    descripcion_del_proceso VARCHAR(1000),
    tipo_de_contrato VARCHAR(120),
    modalidad_de_contratacion VARCHAR(200),
    justificacion_modalidad_de VARCHAR(1000),
    fecha_de_firma DATETIME,
    fecha_de_inicio_del_contrato DATETIME,
    fecha_de_fin_del_contrato DATETIME,
    fecha_de_inicio_de_ejecucion DATETIME,
    fecha_de_fin_de_ejecucion DATETIME,
    condiciones_de_entrega VARCHAR(500),
    habilita_pago_adelantado INTEGER DEFAULT 0,
    liquidacion INTEGER DEFAULT 0,
    obligacion_ambiental INTEGER DEFAULT 0,
    obligaciones_postconsumo INTEGER DEFAULT 0,
    reversion INTEGER DEFAULT 0,
    origen_de_los_recursos VARCHAR(200),
    destino_gasto VARCHAR(200),
    estado_bpin VARCHAR(80),
    codigo_bpin VARCHAR(50),
    anno_bpin VARCHAR(10),
    espostconflicto INTEGER DEFAULT 0,
    dias_adicionados NUMERIC,
    puntos_del_acuerdo VARCHAR(300),
    pilares_del_acuerdo VARCHAR(300),
    urlproceso VARCHAR(500),
    ultima_actualizacion DATETIME,
    fecha_inicio_liquidacion DATETIME,
    fecha_fin_liquidacion DATETIME,
    objeto_del_contrato VARCHAR(1000),
    duracion_del_contrato VARCHAR(200),
    el_contrato_puede_ser_prorrogado INTEGER DEFAULT 0,
    fecha_de_notificacion_de_prorrogacion DATETIME,
    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
    FOREIGN KEY (entidad_id) REFERENCES entidad(entidad_id),
    FOREIGN KEY (proveedor_id) REFERENCES proveedor(proveedor_id)
);

CREATE INDEX IF NOT EXISTS idx_contrato_entidad ON contrato(entidad_id);
CREATE INDEX IF NOT EXISTS idx_contrato_proveedor ON contrato(proveedor_id);

-- =============================================================================
-- CONTRACT DEPENDENT TABLES
-- =============================================================================

CREATE TABLE IF NOT EXISTS contrato_finanzas (
    contrato_id INTEGER PRIMARY KEY,
    valor_del_contrato NUMERIC,
    valor_de_pago_adelantado NUMERIC,
    valor_facturado NUMERIC,
    valor_pendiente_de_pago NUMERIC,
    valor_pagado NUMERIC,
    valor_amortizado NUMERIC,
    valor_pendiente_de_amortizacion NUMERIC,
    valor_pendiente_de_ejecucion NUMERIC,
    saldo_cdp NUMERIC,
    saldo_vigencia NUMERIC,
    FOREIGN KEY (contrato_id) REFERENCES contrato(contrato_id)
);

CREATE TABLE IF NOT EXISTS contrato_recursos (
    contrato_id INTEGER PRIMARY KEY,
    presupuesto_general_de_la_nacion_pgn NUMERIC,
    sistema_general_de_participaciones NUMERIC,
    sistema_general_de_regalias NUMERIC,
    recursos_propios_alcaldias_gobernaciones_resguardos NUMERIC,
    recursos_de_credito NUMERIC,
    recursos_propios NUMERIC,
    FOREIGN KEY (contrato_id) REFERENCES contrato(contrato_id)
);

CREATE TABLE IF NOT EXISTS contrato_bancario (
    contrato_id INTEGER PRIMARY KEY,
    nombre_del_banco VARCHAR(200),
    tipo_de_cuenta VARCHAR(50),
    numero_de_cuenta VARCHAR(50),
    FOREIGN KEY (contrato_id) REFERENCES contrato(contrato_id)
);

CREATE TABLE IF NOT EXISTS contrato_responsable (
    responsable_id INTEGER PRIMARY KEY AUTOINCREMENT,
    contrato_id INTEGER NOT NULL,
    rol VARCHAR(20) NOT NULL,
    nombre VARCHAR(200) NOT NULL,
    tipo_documento VARCHAR(40),
    numero_documento VARCHAR(40),
    UNIQUE (contrato_id, rol),
    FOREIGN KEY (contrato_id) REFERENCES contrato(contrato_id)
);
"""


def to_sql(value: Any) -> Any:
    """Bindable form of a mapped value (dates as ISO text, booleans as 0/1)."""
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    return value


def row_params(row: Mapping[str, Any], columns: Iterable[str]) -> Tuple[Any, ...]:
    return tuple(to_sql(row.get(column)) for column in columns)


def insert_sql(table: str, columns: Tuple[str, ...], rows: int = 1, ignore: bool = True) -> str:
    """INSERT [OR IGNORE] statement with ``rows`` placeholder groups."""
    group = '(' + ', '.join('?' for _ in columns) + ')'
    verb = 'INSERT OR IGNORE' if ignore else 'INSERT'
    return f"{verb} INTO {table} ({', '.join(columns)}) VALUES " + ', '.join([group] * rows)


async def create_schema(conn: aiosqlite.Connection) -> None:
    """Create all eight tables and their indexes if they do not exist."""
    await conn.executescript(SCHEMA_DDL)
    logger.info("schema_ready", tables=len(TABLE_NAMES))


async def table_counts(conn: aiosqlite.Connection) -> dict:
    """Row count per table, in load order."""
    counts = {}
    for table in TABLE_NAMES:
        async with conn.execute(f"SELECT COUNT(*) FROM {table}") as cursor:
            row = await cursor.fetchone()
        counts[table] = row[0]
    return counts
