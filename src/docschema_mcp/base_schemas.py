"""Hand-authored base fields per collection."""

from typing import Any

from docschema_mcp.models import FieldDefinition, SchemaField

# Type name used for collections without compiled base fields
DEFAULT_TYPE_NAME = "Document"

WEATHER_CONFIG_SCHEMA: dict[str, dict[str, Any]] = {
    "weatherEnabled": {"type": "boolean", "default": False, "required": True},
    "aemetEnabled": {"type": "boolean", "default": False, "required": True},
    "aemetUseForSpain": {"type": "boolean", "default": False, "required": True},
    "temperatureUnit": {
        "type": "string",
        "default": "celsius",
        "required": True,
        "validation": {"enum": ["celsius", "fahrenheit"]},
    },
    "windSpeedUnit": {
        "type": "string",
        "default": "kmh",
        "required": True,
        "validation": {"enum": ["kmh", "ms", "mph"]},
    },
    "precipitationUnit": {
        "type": "string",
        "default": "mm",
        "required": True,
        "validation": {"enum": ["mm", "inch"]},
    },
}

MATERIAL_CONFIG_SCHEMA: dict[str, dict[str, Any]] = {
    "porcentajeStockMinimo": {
        "type": "number",
        "default": 10,
        "required": True,
        "validation": {"min": 1, "max": 100},
    },
    "diasRevisionPeriodica": {
        "type": "number",
        "default": 90,
        "required": True,
        "validation": {"min": 1, "max": 365},
    },
    "tiempoMinimoEntrePrestamos": {
        "type": "number",
        "default": 0,
        "required": True,
        "validation": {"min": 0, "max": 168},
    },
}

SYSTEM_CONFIG_SCHEMA: dict[str, dict[str, Any]] = {
    "appName": {"type": "string", "default": "Material App", "required": True},
    "version": {"type": "string", "default": "1.0.0", "required": True},
    "maintenanceMode": {"type": "boolean", "default": False, "required": True},
    "maxUsersOnline": {
        "type": "number",
        "default": 100,
        "required": True,
        "validation": {"min": 1, "max": 1000},
    },
}

GOOGLE_APIS_CONFIG_SCHEMA: dict[str, dict[str, Any]] = {
    **{
        f"{api}ApiKey": {"type": "string", "default": "", "required": False}
        for api in (
            "mapsJavaScript",
            "mapsEmbed",
            "geocoding",
            "drive",
            "calendar",
            "gmail",
            "chat",
            "cloudMessaging",
            "analytics",
            "bigQuery",
            "pubSub",
            "extensions",
        )
    },
    "mapsDefaultZoom": {
        "type": "number",
        "default": 10,
        "required": True,
        "validation": {"min": 1, "max": 21},
    },
    "mapsDefaultLatitude": {
        "type": "number",
        "default": 40.4168,
        "required": True,
        "validation": {"min": -90, "max": 90},
    },
    "mapsDefaultLongitude": {
        "type": "number",
        "default": -3.7038,
        "required": True,
        "validation": {"min": -180, "max": 180},
    },
    **{
        f"{api}Enabled": {"type": "boolean", "default": False, "required": True}
        for api in (
            "maps",
            "drive",
            "calendar",
            "gmail",
            "chat",
            "cloudMessaging",
            "analytics",
            "bigQuery",
            "pubSub",
            "extensions",
        )
    },
}

USUARIO_SCHEMA: dict[str, dict[str, Any]] = {
    "uid": {"type": "string", "required": True, "description": "Auth user id"},
    "email": {"type": "string", "required": True, "description": "User email"},
    "nombre": {"type": "string", "required": True, "description": "First name"},
    "apellidos": {"type": "string", "required": True, "description": "Last name"},
    "rol": {
        "type": "string",
        "required": True,
        "description": "User role",
        "validation": {"enum": ["admin", "vocal", "socio", "invitado"]},
    },
}

ACTIVIDAD_SCHEMA: dict[str, dict[str, Any]] = {
    "nombre": {"type": "string", "required": True, "description": "Activity name"},
    "descripcion": {"type": "string", "required": True, "description": "Description"},
    "lugar": {"type": "string", "required": True, "description": "Location"},
    "responsableActividadId": {
        "type": "string",
        "required": True,
        "description": "Id of the member in charge",
    },
    "estado": {
        "type": "string",
        "required": True,
        "description": "Activity status",
        "validation": {"enum": ["planificada", "en_curso", "finalizada", "cancelada"]},
    },
    "creadorId": {"type": "string", "required": True, "description": "Creator id"},
}

PRESTAMO_SCHEMA: dict[str, dict[str, Any]] = {
    "materialId": {"type": "string", "required": True, "description": "Loaned material id"},
    "nombreMaterial": {"type": "string", "required": True, "description": "Material name"},
    "usuarioId": {"type": "string", "required": True, "description": "Borrower id"},
    "nombreUsuario": {"type": "string", "required": True, "description": "Borrower name"},
    "cantidadPrestada": {
        "type": "number",
        "required": True,
        "description": "Quantity loaned",
        "validation": {"min": 1},
    },
    "estado": {
        "type": "string",
        "required": True,
        "description": "Loan status",
        "validation": {
            "enum": [
                "solicitado",
                "aprobado",
                "rechazado",
                "en_uso",
                "devuelto",
                "expirado",
                "pendiente",
                "perdido",
                "estropeado",
                "cancelado",
                "por_devolver",
            ]
        },
    },
}

MATERIAL_SCHEMA: dict[str, dict[str, Any]] = {
    "nombre": {"type": "string", "required": True, "description": "Material name"},
    "tipo": {
        "type": "string",
        "required": True,
        "description": "Material kind",
        "validation": {"enum": ["cuerda", "anclaje", "varios"]},
    },
    "estado": {
        "type": "string",
        "required": True,
        "description": "Material status",
        "validation": {
            "enum": [
                "disponible",
                "prestado",
                "mantenimiento",
                "baja",
                "perdido",
                "revision",
                "retirado",
            ]
        },
    },
    "cantidad": {
        "type": "number",
        "default": 1,
        "description": "Total quantity",
        "validation": {"min": 0},
    },
    "cantidadDisponible": {
        "type": "number",
        "default": 1,
        "description": "Available quantity",
        "validation": {"min": 0},
    },
}

# Collection name -> (type name, base schema)
BASE_SCHEMAS: dict[str, tuple[str, dict[str, dict[str, Any]]]] = {
    "weather": ("WeatherConfig", WEATHER_CONFIG_SCHEMA),
    "material": ("MaterialConfig", MATERIAL_CONFIG_SCHEMA),
    "system": ("SystemConfig", SYSTEM_CONFIG_SCHEMA),
    "googleApis": ("GoogleApisConfig", GOOGLE_APIS_CONFIG_SCHEMA),
    "usuarios": ("Usuario", USUARIO_SCHEMA),
    "actividades": ("Actividad", ACTIVIDAD_SCHEMA),
    "prestamos": ("Prestamo", PRESTAMO_SCHEMA),
    "materials": ("Material", MATERIAL_SCHEMA),
    "material_deportivo": ("Material", MATERIAL_SCHEMA),
    "configuracion": ("SystemConfig", SYSTEM_CONFIG_SCHEMA),
}

BASE_COLLECTIONS: list[str] = list(BASE_SCHEMAS)


def get_type_name(collection: str) -> str:
    """Get the type name of a collection's documents."""
    if collection in BASE_SCHEMAS:
        return BASE_SCHEMAS[collection][0]
    return DEFAULT_TYPE_NAME


def get_base_fields(collection: str) -> list[SchemaField]:
    """Get a fresh list of base fields for a collection.

    Args:
        collection: Collection name.

    Returns:
        Base fields, empty for collections without compiled definitions.
    """
    if collection not in BASE_SCHEMAS:
        return []
    _, schema = BASE_SCHEMAS[collection]
    return [
        SchemaField(name=name, definition=FieldDefinition.from_dict(definition))
        for name, definition in schema.items()
    ]
