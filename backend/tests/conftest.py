"""
Pytest fixtures for loader tests.
"""
import csv

import pytest

from secop.config.settings import ImportSettings
from secop.context import IngestionContext
from secop.mapping import source_columns
from secop.pool import ConnectionPool
from secop.resolver import EntityResolver
from secop.schema import create_schema

# A complete, valid SECOP row keyed by published header
BASE_RECORD = {
    'Nombre Entidad': 'ALCALDIA MUNICIPAL DE ENVIGADO',
    'Nit Entidad': '900123456',
    'Departamento': 'Antioquia',
    'Ciudad': 'Envigado',
    'Localización': 'Colombia, Antioquia, Envigado',
    'Orden': 'Territorial',
    'Sector': 'Servicio Público',
    'Rama': 'Ejecutivo',
    'Entidad Centralizada': 'Centralizada',
    'Codigo Entidad': '701234567',
    'Codigo Proveedor': '717171',
    'TipoDocProveedor': 'NIT',
    'Documento Proveedor': '901555666',
    'Proveedor Adjudicado': 'CONSTRUCTORA ANDINA SAS',
    'Es Grupo': 'No',
    'Es Pyme': 'Si',
    'Nombre Representante Legal': 'CARLOS GOMEZ',
    'Nacionalidad Representante Legal': 'Colombia',
    'Domicilio Representante Legal': 'Calle 10 # 20-30',
    'Tipo de Identificación Representante Legal': 'Cédula de Ciudadanía',
    'Identificación Representante Legal': '71234567',
    'Género Representante Legal': 'Masculino',
    'ID Contrato': 'CO1.PCCNTR.1001',
    'Proceso de Compra': 'CO1.BDOS.2001',
    'Referencia del Contrato': 'CD-045-2023',
    'Estado Contrato': 'En ejecución',
    'Tipo de Contrato': 'Obra',
    'Modalidad de Contratacion': 'Licitación pública',
    'Objeto del Contrato': 'Mantenimiento de vías urbanas',
    'Fecha de Firma': '15/03/2023',
    'Fecha de Inicio del Contrato': '2023-04-01',
    'Fecha de Fin del Contrato': '31/12/2023',
    'Habilita Pago Adelantado': 'Si',
    'Liquidación': 'No',
    'EsPostConflicto': 'No',
    'Dias adicionados': '0',
    'Valor del Contrato': '$1,500,000.00',
    'Valor Pagado': '$500,000',
    'Valor Facturado': '',
    'Recursos Propios': '1,500,000',
    'Nombre del banco': 'Bancolombia',
    'Tipo de cuenta': 'Ahorros',
    'Número de cuenta': '123-456789-00',
    'Nombre supervisor': 'ANA PEREZ',
    'Tipo de documento supervisor': 'Cédula de Ciudadanía',
    'Número de documento supervisor': '43111222',
    'Nombre ordenador del gasto': 'LUIS RAMIREZ',
    'Tipo de documento Ordenador del gasto': 'Cédula de Ciudadanía',
    'Número de documento Ordenador del gasto': '98333444',
}


def make_record(overrides=None) -> dict:
    """Full-width record: every mapped header present, blanks where unset."""
    record = {column: '' for column in source_columns()}
    record.update(BASE_RECORD)
    if overrides:
        record.update(overrides)
    return record


@pytest.fixture
def record_factory():
    return make_record


@pytest.fixture
def db_path(tmp_path):
    return tmp_path / "secop_test.db"


@pytest.fixture
def settings(db_path):
    """Small batches so a handful of rows spans several transactions."""
    return ImportSettings(
        db_path=db_path,
        batch_size=2,
        pool_size=2,
        flush_threshold=2,
        cache_size=100,
        busy_timeout_ms=1000,
    )


@pytest.fixture
def context():
    return IngestionContext(resolver=EntityResolver(cache_size=100, flush_threshold=2))


@pytest.fixture
def write_csv(tmp_path):
    """Write records to a CSV with the full SECOP header row."""

    def _write(records, name="contratos.csv", encoding="utf-8"):
        path = tmp_path / name
        with open(path, "w", newline="", encoding=encoding) as f:
            writer = csv.DictWriter(f, fieldnames=source_columns())
            writer.writeheader()
            for record in records:
                writer.writerow(record)
        return path

    return _write


@pytest.fixture
async def pool(db_path):
    """Open pool over a fresh database with the schema in place."""
    pool = await ConnectionPool.open(db_path, size=2, busy_timeout_ms=1000)
    async with pool.session() as conn:
        await create_schema(conn)
    yield pool
    await pool.close()


@pytest.fixture
def count_rows():
    """Async helper returning COUNT(*) of a table through a pool session."""

    async def _count(pool, table, where="", params=()):
        async with pool.session() as conn:
            sql = f"SELECT COUNT(*) FROM {table}" + (f" WHERE {where}" if where else "")
            async with conn.execute(sql, params) as cursor:
                row = await cursor.fetchone()
        return row[0]

    return _count
