import base64
from typing import Any, Literal
from pydantic import (
    BaseModel,
    RootModel,
    model_validator,
    field_validator,
)
from enum import StrEnum


class ApiVersion(StrEnum):
    V1 = "admission.k8s.io/v1"


class Operation(StrEnum):
    CREATE = "CREATE"
    UPDATE = "UPDATE"
    DELETE = "DELETE"
    CONNECT = "CONNECT"


class PatchType(StrEnum):
    JSONPatch = "JSONPatch"


class PatchOp(StrEnum):
    REPLACE = "replace"
    ADD = "add"


# https://kubernetes.io/docs/reference/generated/kubernetes-api/v1.30/#objectfieldselector-v1-core
class ObjectFieldSelector(BaseModel):
    fieldPath: str


class EnvVarSource(BaseModel):
    fieldRef: ObjectFieldSelector | None = None


# https://kubernetes.io/docs/reference/generated/kubernetes-api/v1.30/#envvar-v1-core
class EnvVar(BaseModel):
    name: str
    value: str | None = None
    valueFrom: EnvVarSource | None = None

    @classmethod
    def from_field(cls, name: str, field_path: str) -> "EnvVar":
        return cls(
            name=name,
            valueFrom=EnvVarSource(fieldRef=ObjectFieldSelector(fieldPath=field_path)),
        )


class PatchAction(BaseModel):
    op: PatchOp
    path: str
    value: str | EnvVar | list[EnvVar] | None = None


# https://jsonpatch.com/
Patch = RootModel[list[PatchAction]]


class Container(BaseModel):
    name: str | None = None
    env: list[EnvVar] = []

    @field_validator("env", mode="before")
    @classmethod
    def validate_env(cls, val):
        return [] if val is None else val


class PodSpec(BaseModel):
    containers: list[Container] = []

    @field_validator("containers", mode="before")
    @classmethod
    def validate_containers(cls, val):
        return [] if val is None else val


class Metadata(BaseModel):
    labels: dict[str, str] = {}

    # Kubernetes serializes unset collections as null.
    @field_validator("labels", mode="before")
    @classmethod
    def validate_labels(cls, val):
        return {} if val is None else val


class Pod(BaseModel):
    metadata: Metadata = Metadata()
    spec: PodSpec = PodSpec()

    @classmethod
    def from_object(cls, obj: Any) -> "Pod":
        """Decode the object embedded in an admission request.

        The API server sends the pod inline, but we also accept the
        `{"raw": "<json>"}` form of a serialized runtime.RawExtension.
        """
        if isinstance(obj, dict) and isinstance(obj.get("raw"), (str, bytes)):
            return cls.model_validate_json(obj["raw"])
        return cls.model_validate(obj)


# https://kubernetes.io/docs/reference/generated/kubernetes-api/v1.30/#groupversionresource-v1-meta
class GroupVersionResource(BaseModel):
    group: str = ""
    version: str = ""
    resource: str = ""


POD_RESOURCE = GroupVersionResource(version="v1", resource="pods")


# https://kubernetes.io/docs/reference/config-api/apiserver-admission.v1/#admission-k8s-io-v1-AdmissionResponse
class AdmissionResponse(BaseModel):
    uid: str
    allowed: bool
    patchType: PatchType | None = None
    patch: str | None = None

    @field_validator("patch", mode="before")
    @classmethod
    def validate_patch(cls, val):
        if isinstance(val, Patch):
            val = base64.b64encode(val.model_dump_json(exclude_none=True).encode())
        elif isinstance(val, (str, bytes)):
            # Make sure the base64 string contains valid data.
            Patch.model_validate_json(base64.b64decode(val))
        if isinstance(val, bytes):
            val = val.decode()
        return val

    @model_validator(mode="after")
    def validate_model(self):
        if self.patch and not self.patchType:
            raise ValueError("missing patchType field")
        if self.patchType and not self.patch:
            raise ValueError(f"patchType is {self.patchType} but there is no patch")

        return self


# https://kubernetes.io/docs/reference/config-api/apiserver-admission.v1/#admission-k8s-io-v1-AdmissionRequest
class AdmissionRequest(BaseModel):
    uid: str = ""
    name: str | None = None
    namespace: str = ""
    operation: Operation = Operation.CREATE
    resource: GroupVersionResource = GroupVersionResource()
    object: Any = None


# https://kubernetes.io/docs/reference/config-api/apiserver-admission.v1/#admission-k8s-io-v1-AdmissionReview
class AdmissionReview(BaseModel):
    """The review as sent by the API server.

    Whether `request` is present is checked by the webhook rather than here,
    so that a missing request can be reported separately from a malformed body.
    """

    apiVersion: str | None = None
    kind: str | None = None
    request: AdmissionRequest | None = None


class AdmissionReviewResponse(BaseModel):
    # Field order is the serialization order; the API server expects kind
    # first.
    kind: Literal["AdmissionReview"] = "AdmissionReview"
    apiVersion: Literal[ApiVersion.V1] = ApiVersion.V1
    response: AdmissionResponse
