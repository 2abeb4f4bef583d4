from typing import Any, ClassVar, Dict, Tuple
from bson import ObjectId
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


def new_object_id() -> str:
    return str(ObjectId())


def _to_object_ids(value: Any) -> Any:
    if value is None:
        return None
    if isinstance(value, list):
        return [ObjectId(item) for item in value]
    return ObjectId(value)


def _to_strings(value: Any) -> Any:
    if value is None:
        return None
    if isinstance(value, list):
        return [str(item) for item in value]
    return str(value)


class MongoModel(BaseModel):
    """
    MongoDB 문서와 매핑되는 도메인 모델의 기반 클래스

    문서 필드는 camelCase로 저장되며 `_id`와 참조 필드는 ObjectId로 변환됩니다.
    """
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    id: str = Field(default_factory=new_object_id)

    # ObjectId로 저장되는 참조 필드 (파이썬 필드명)
    reference_fields: ClassVar[Tuple[str, ...]] = ()

    def to_document(self) -> Dict[str, Any]:
        data = self.model_dump(by_alias=True, exclude={"id"})
        for field in self.reference_fields:
            alias = to_camel(field)
            data[alias] = _to_object_ids(data.get(alias))
        data["_id"] = ObjectId(self.id)
        return data

    @classmethod
    def from_document(cls, document: Dict[str, Any]):
        data = dict(document)
        data["id"] = str(data.pop("_id"))
        for field in cls.reference_fields:
            alias = to_camel(field)
            if alias in data:
                data[alias] = _to_strings(data[alias])
        return cls.model_validate(data)
