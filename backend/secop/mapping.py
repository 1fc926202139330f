"""
Row mapping: one raw SECOP record -> typed table rows.

The mapper is pure. It reads the source columns by their published header
names, applies the field normalizers column by column and returns either
None (the row lacks an identifying field and must be skipped) or a
MappedRow bundle ready for persistence.
"""

import re
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Mapping, Optional

from unidecode import unidecode

from secop.config import constants as C
from secop.normalize import clean_text, normalize_boolean, parse_date, parse_number, truncate

# =============================================================================
# SOURCE COLUMNS
# =============================================================================

# Organization
COL_ENTITY_NAME = 'Nombre Entidad'
COL_ENTITY_NIT = 'Nit Entidad'
COL_DEPARTMENT = 'Departamento'
COL_CITY = 'Ciudad'
COL_LOCATION = 'Localización'
COL_ORDER = 'Orden'
COL_SECTOR = 'Sector'
COL_BRANCH = 'Rama'
COL_CENTRALIZED = 'Entidad Centralizada'
COL_ENTITY_CODE = 'Codigo Entidad'

# Supplier
COL_SUPPLIER_CODE = 'Codigo Proveedor'
COL_SUPPLIER_DOCTYPE = 'TipoDocProveedor'
COL_SUPPLIER_DOCUMENT = 'Documento Proveedor'
COL_SUPPLIER_NAME = 'Proveedor Adjudicado'
COL_IS_GROUP = 'Es Grupo'
COL_IS_PYME = 'Es Pyme'

# Legal representative
COL_REP_NAME = 'Nombre Representante Legal'
COL_REP_NATIONALITY = 'Nacionalidad Representante Legal'
COL_REP_ADDRESS = 'Domicilio Representante Legal'
COL_REP_ID_TYPE = 'Tipo de Identificación Representante Legal'
COL_REP_ID = 'Identificación Representante Legal'
COL_REP_GENDER = 'Género Representante Legal'

COL_CONTRACT_ID = 'ID Contrato'

# contract column -> source header, per value kind
CONTRACT_TEXT_SOURCES = {
    'proceso_de_compra': 'Proceso de Compra',
    'referencia_del_contrato': 'Referencia del Contrato',
    'estado_contrato': 'Estado Contrato',
    'codigo_de_categoria_principal': 'Codigo de Categoria Principal',
    'descripcion_del_proceso': 'Descripcion del Proceso',
    'tipo_de_contrato': 'Tipo de Contrato',
    'modalidad_de_contratacion': 'Modalidad de Contratacion',
    'justificacion_modalidad_de': 'Justificacion Modalidad de Contratacion',
    'condiciones_de_entrega': 'Condiciones de Entrega',
    'origen_de_los_recursos': 'Origen de los Recursos',
    'destino_gasto': 'Destino Gasto',
    'estado_bpin': 'Estado BPIN',
    'codigo_bpin': 'Código BPIN',
    'anno_bpin': 'Anno BPIN',
    'puntos_del_acuerdo': 'Puntos del Acuerdo',
    'pilares_del_acuerdo': 'Pilares del Acuerdo',
    'urlproceso': 'URLProceso',
    'objeto_del_contrato': 'Objeto del Contrato',
    'duracion_del_contrato': 'Duración del contrato',
}

CONTRACT_DATE_SOURCES = {
    'fecha_de_firma': 'Fecha de Firma',
    'fecha_de_inicio_del_contrato': 'Fecha de Inicio del Contrato',
    'fecha_de_fin_del_contrato': 'Fecha de Fin del Contrato',
    'fecha_de_inicio_de_ejecucion': 'Fecha de Inicio de Ejecucion',
    'fecha_de_fin_de_ejecucion': 'Fecha de Fin de Ejecucion',
    'ultima_actualizacion': 'Ultima Actualizacion',
    'fecha_inicio_liquidacion': 'Fecha Inicio Liquidacion',
    'fecha_fin_liquidacion': 'Fecha Fin Liquidacion',
    'fecha_de_notificacion_de_prorrogacion': 'Fecha de notificación de prorrogación',
}

CONTRACT_FLAG_SOURCES = {
    'habilita_pago_adelantado': 'Habilita Pago Adelantado',
    'liquidacion': 'Liquidación',
    'obligacion_ambiental': 'Obligación Ambiental',
    'obligaciones_postconsumo': 'Obligaciones Postconsumo',
    'reversion': 'Reversion',
    'espostconflicto': 'EsPostConflicto',
    'el_contrato_puede_ser_prorrogado': 'El contrato puede ser prorrogado',
}

CONTRACT_NUMBER_SOURCES = {
    'dias_adicionados': 'Dias adicionados',
}

FINANCE_SOURCES = {
    'valor_del_contrato': 'Valor del Contrato',
    'valor_de_pago_adelantado': 'Valor de pago adelantado',
    'valor_facturado': 'Valor Facturado',
    'valor_pendiente_de_pago': 'Valor Pendiente de Pago',
    'valor_pagado': 'Valor Pagado',
    'valor_amortizado': 'Valor Amortizado',
    'valor_pendiente_de_amortizacion': 'Valor Pendiente de Amortizacion',
    'valor_pendiente_de_ejecucion': 'Valor Pendiente de Ejecucion',
    'saldo_cdp': 'Saldo CDP',
    'saldo_vigencia': 'Saldo Vigencia',
}

RESOURCES_SOURCES = {
    'presupuesto_general_de_la_nacion_pgn': 'Presupuesto General de la Nacion – PGN',
    'sistema_general_de_participaciones': 'Sistema General de Participaciones',
    'sistema_general_de_regalias': 'Sistema General de Regalías',
    'recursos_propios_alcaldias_gobernaciones_resguardos':
        'Recursos Propios (Alcaldías, Gobernaciones y Resguardos Indígenas)',
    'recursos_de_credito': 'Recursos de Credito',
    'recursos_propios': 'Recursos Propios',
}

COL_BANK_NAME = 'Nombre del banco'
COL_ACCOUNT_TYPE = 'Tipo de cuenta'
COL_ACCOUNT_NUMBER = 'Número de cuenta'

# role -> (name, document type, document number) headers
RESPONSIBLE_SOURCES = (
    (C.ROLE_SUPERVISOR, (
        'Nombre supervisor',
        'Tipo de documento supervisor',
        'Número de documento supervisor',
    )),
    (C.ROLE_SPENDING_AUTHORITY, (
        'Nombre ordenador del gasto',
        'Tipo de documento Ordenador del gasto',
        'Número de documento Ordenador del gasto',
    )),
    (C.ROLE_PAYMENT_AUTHORITY, (
        'Nombre Ordenador de Pago',
        'Tipo de documento Ordenador de Pago',
        'Número de documento Ordenador de Pago',
    )),
)


def source_columns() -> List[str]:
    """Every header the mapper reads, in a stable order."""
    columns = [
        COL_ENTITY_NAME, COL_ENTITY_NIT, COL_DEPARTMENT, COL_CITY, COL_LOCATION,
        COL_ORDER, COL_SECTOR, COL_BRANCH, COL_CENTRALIZED, COL_ENTITY_CODE,
        COL_SUPPLIER_CODE, COL_SUPPLIER_DOCTYPE, COL_SUPPLIER_DOCUMENT,
        COL_SUPPLIER_NAME, COL_IS_GROUP, COL_IS_PYME,
        COL_REP_NAME, COL_REP_NATIONALITY, COL_REP_ADDRESS, COL_REP_ID_TYPE,
        COL_REP_ID, COL_REP_GENDER, COL_CONTRACT_ID,
    ]
    for sources in (CONTRACT_TEXT_SOURCES, CONTRACT_DATE_SOURCES, CONTRACT_FLAG_SOURCES,
                    CONTRACT_NUMBER_SOURCES, FINANCE_SOURCES, RESOURCES_SOURCES):
        columns.extend(sources.values())
    columns.extend([COL_BANK_NAME, COL_ACCOUNT_TYPE, COL_ACCOUNT_NUMBER])
    for _, headers in RESPONSIBLE_SOURCES:
        columns.extend(headers)
    return columns


# =============================================================================
# HEADER MATCHING
# =============================================================================

def _header_key(name: str) -> str:
    """Accent-, case- and whitespace-insensitive form of a header."""
    folded = unidecode(str(name)).lower()
    return re.sub(r'\s+', ' ', folded).strip()


def canonical_headers(columns: Iterable[str]) -> Dict[str, str]:
    """
    Map the file's actual headers to the canonical names used by the mapper.

    Exports re-saved through spreadsheets often lose accents or change case
    ("Localizacion", "NIT ENTIDAD"); those still resolve. Unknown headers map
    to themselves.
    """
    known = {_header_key(col): col for col in source_columns()}
    return {col: known.get(_header_key(col), col) for col in columns}


# =============================================================================
# MAPPED STRUCTURES
# =============================================================================

@dataclass
class MappedRow:
    """Typed sub-structures of one source row, keyed by target column."""
    contract_id: str
    entity_key: str
    entity: Dict[str, object]
    contract: Dict[str, object]
    finance: Dict[str, object]
    resources: Dict[str, object]
    supplier_key: Optional[str] = None
    supplier: Optional[Dict[str, object]] = None
    bank: Optional[Dict[str, object]] = None
    responsibles: List[Dict[str, object]] = field(default_factory=list)
    representative: Optional[Dict[str, object]] = None


def _text(record: Mapping, column: str) -> Optional[str]:
    return clean_text(record.get(column))


def _map_entity(record: Mapping, name: str, nit: str) -> Dict[str, object]:
    return {
        'nombre_entidad': truncate(name, C.ENTITY_NAME_LEN),
        'nit_entidad': nit,
        'departamento': truncate(_text(record, COL_DEPARTMENT), C.ENTITY_REGION_LEN),
        'ciudad': truncate(_text(record, COL_CITY), C.ENTITY_REGION_LEN),
        'localizacion': truncate(_text(record, COL_LOCATION), C.ENTITY_LOCATION_LEN),
        'orden': truncate(_text(record, COL_ORDER), C.ENTITY_REGION_LEN),
        'sector': truncate(_text(record, COL_SECTOR), C.ENTITY_REGION_LEN),
        'rama': truncate(_text(record, COL_BRANCH), C.ENTITY_REGION_LEN),
        'entidad_centralizada': normalize_boolean(record.get(COL_CENTRALIZED)),
        'codigo_entidad': parse_number(record.get(COL_ENTITY_CODE)),
    }


def _map_supplier(record: Mapping) -> Optional[Dict[str, object]]:
    name = _text(record, COL_SUPPLIER_NAME)
    document = _text(record, COL_SUPPLIER_DOCUMENT)
    if not name and not document:
        return None

    document = truncate(document, C.SUPPLIER_DOCUMENT_LEN)
    code = truncate(_text(record, COL_SUPPLIER_CODE), C.SUPPLIER_CODE_LEN)
    name = truncate(name, C.SUPPLIER_NAME_LEN)
    return {
        # first non-empty of document, code, display name
        'clave_proveedor': document or code or name,
        'codigo_proveedor': code,
        'tipodocproveedor': truncate(_text(record, COL_SUPPLIER_DOCTYPE), C.SUPPLIER_DOCTYPE_LEN),
        'documento_proveedor': document,
        'proveedor_adjudicado': name,
        'es_grupo': normalize_boolean(record.get(COL_IS_GROUP)),
        'es_pyme': normalize_boolean(record.get(COL_IS_PYME)),
    }


def _map_representative(record: Mapping) -> Optional[Dict[str, object]]:
    name = _text(record, COL_REP_NAME)
    if not name:
        return None
    return {
        'nombre_representante_legal': truncate(name, C.REP_NAME_LEN),
        'nacionalidad_representante_legal': truncate(_text(record, COL_REP_NATIONALITY), C.REP_NATIONALITY_LEN),
        'domicilio_representante_legal': truncate(_text(record, COL_REP_ADDRESS), C.REP_ADDRESS_LEN),
        'tipo_de_identificacion_representante_legal': truncate(_text(record, COL_REP_ID_TYPE), C.REP_SHORT_LEN),
        'identificacion_representante_legal': truncate(_text(record, COL_REP_ID), C.REP_SHORT_LEN),
        'genero_representante_legal': truncate(_text(record, COL_REP_GENDER), C.REP_SHORT_LEN),
    }


def _map_contract(record: Mapping, contract_id: str) -> Dict[str, object]:
    contract: Dict[str, object] = {
        'id_contrato': truncate(contract_id, C.CONTRACT_TEXT_LIMITS['id_contrato']),
    }
    for column, header in CONTRACT_TEXT_SOURCES.items():
        contract[column] = truncate(_text(record, header), C.CONTRACT_TEXT_LIMITS[column])
    for column, header in CONTRACT_DATE_SOURCES.items():
        contract[column] = parse_date(record.get(header))
    for column, header in CONTRACT_FLAG_SOURCES.items():
        contract[column] = normalize_boolean(record.get(header))
    for column, header in CONTRACT_NUMBER_SOURCES.items():
        contract[column] = parse_number(record.get(header))
    return contract


def _map_responsibles(record: Mapping) -> List[Dict[str, object]]:
    responsibles = []
    for role, (name_col, doctype_col, docnum_col) in RESPONSIBLE_SOURCES:
        name = _text(record, name_col)
        if not name:
            continue
        responsibles.append({
            'rol': role,
            'nombre': truncate(name, C.RESPONSIBLE_NAME_LEN),
            'tipo_documento': truncate(_text(record, doctype_col), C.RESPONSIBLE_DOC_LEN),
            'numero_documento': truncate(_text(record, docnum_col), C.RESPONSIBLE_DOC_LEN),
        })
    return responsibles


def _map_bank(record: Mapping) -> Optional[Dict[str, object]]:
    bank_name = _text(record, COL_BANK_NAME)
    if not bank_name:
        return None
    return {
        'nombre_del_banco': truncate(bank_name, C.BANK_NAME_LEN),
        'tipo_de_cuenta': truncate(_text(record, COL_ACCOUNT_TYPE), C.BANK_SHORT_LEN),
        'numero_de_cuenta': truncate(_text(record, COL_ACCOUNT_NUMBER), C.BANK_SHORT_LEN),
    }


def map_row(record: Mapping) -> Optional[MappedRow]:
    """
    Convert one raw field-keyed record into a MappedRow.

    Returns None when the organization name, organization tax id or
    contract id is missing; such rows are skipped, not errors.
    """
    entity_name = _text(record, COL_ENTITY_NAME)
    raw_nit = record.get(COL_ENTITY_NIT)
    nit = clean_text(str(raw_nit).replace(',', '')) if raw_nit is not None else None
    contract_id = _text(record, COL_CONTRACT_ID)

    if not entity_name or not nit or not contract_id:
        return None

    nit = truncate(nit, C.ENTITY_NIT_LEN)
    supplier = _map_supplier(record)
    contract = _map_contract(record, contract_id)

    return MappedRow(
        contract_id=contract['id_contrato'],
        entity_key=nit,
        entity=_map_entity(record, entity_name, nit),
        contract=contract,
        finance={column: parse_number(record.get(header)) for column, header in FINANCE_SOURCES.items()},
        resources={column: parse_number(record.get(header)) for column, header in RESOURCES_SOURCES.items()},
        supplier_key=supplier['clave_proveedor'] if supplier else None,
        supplier=supplier,
        bank=_map_bank(record),
        responsibles=_map_responsibles(record),
        representative=_map_representative(record),
    )
