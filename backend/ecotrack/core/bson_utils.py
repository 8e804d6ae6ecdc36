# backend/ecotrack/core/bson_utils.py
# Helpers Pydantic v2 pour ObjectId + base model Mongo (alias camelCase, `_id`).
from __future__ import annotations

from typing import Any, Optional

from bson import ObjectId
from pydantic import BaseModel, ConfigDict, Field, GetCoreSchemaHandler
from pydantic.alias_generators import to_camel
from pydantic.json_schema import GetJsonSchemaHandler, JsonSchemaValue
from pydantic_core import core_schema

from ecotrack.core.errors import ValidationError


class PyObjectId(ObjectId):
    """ObjectId compatible Pydantic v2 et OpenAPI.

    Description:
        Accepte une chaîne hex de 24 caractères ou un `ObjectId`, sérialise en chaîne
        et expose un schéma OpenAPI `string/objectid`.
    """

    @classmethod
    def __get_pydantic_core_schema__(cls, source_type: Any, handler: GetCoreSchemaHandler) -> core_schema.CoreSchema:
        return core_schema.json_or_python_schema(
            json_schema=core_schema.no_info_plain_validator_function(cls._validate),
            python_schema=core_schema.no_info_plain_validator_function(cls._validate),
            serialization=core_schema.plain_serializer_function_ser_schema(str, when_used="json"),
        )

    @classmethod
    def __get_pydantic_json_schema__(cls, core_schema_obj: core_schema.CoreSchema, handler: GetJsonSchemaHandler) -> JsonSchemaValue:
        return {
            "type": "string",
            "format": "objectid",
            "pattern": "^[a-fA-F0-9]{24}$",
            "examples": ["507f1f77bcf86cd799439011"],
        }

    @classmethod
    def _validate(cls, v: Any) -> ObjectId:
        if isinstance(v, ObjectId):
            return v
        if isinstance(v, str) and ObjectId.is_valid(v):
            return ObjectId(v)
        raise ValueError(f"Invalid ObjectId: {v!r}")


def parse_object_id(value: Any, label: str = "id") -> ObjectId:
    """Convertit une référence en ObjectId ou lève `ValidationError`.

    Args:
        value (Any): `ObjectId` ou chaîne hex de 24 caractères.
        label (str): Nom utilisé dans le message d'erreur.

    Returns:
        ObjectId: Identifiant validé.

    Raises:
        ValidationError: Si la valeur n'est pas un ObjectId valide.
    """
    if isinstance(value, ObjectId):
        return value
    if isinstance(value, str) and ObjectId.is_valid(value):
        return ObjectId(value)
    raise ValidationError(f"Invalid {label}")


class MongoBaseModel(BaseModel):
    """BaseModel Pydantic pour documents Mongo.

    Description:
        - Champ `_id` exposé via l'attribut `id` (type `PyObjectId`)
        - Attributs Python en snake_case, clés Mongo/JSON en camelCase
    """
    id: Optional[PyObjectId] = Field(default=None, alias="_id")

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        arbitrary_types_allowed=True,
    )


def dump_mongo(model: BaseModel, *, exclude_none: bool = False) -> dict:
    """Dump d'un modèle pour Mongo (dict, clés aliasées, ObjectId/datetime natifs).

    Description:
        Un `_id` absent n'est pas émis : Mongo l'assigne à l'insertion.
    """
    doc = model.model_dump(by_alias=True, exclude_none=exclude_none)
    if doc.get("_id") is None:
        doc.pop("_id", None)
    return doc
