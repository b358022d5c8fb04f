import base64
import json

import pydantic
import pytest

from models import (
    AdmissionResponse,
    AdmissionReview,
    AdmissionReviewResponse,
    EnvVar,
    Patch,
    PatchAction,
    Pod,
    POD_RESOURCE,
)


def test_patch_action_omits_missing_value():
    action = PatchAction(op="add", path="/metadata/labels/owner")
    assert action.model_dump_json(exclude_none=True) == (
        '{"op":"add","path":"/metadata/labels/owner"}'
    )


def test_patch_action_env_value():
    action = PatchAction(
        op="replace",
        path="/spec/containers/0/env/0",
        value=EnvVar.from_field("NODEIP", "status.hostIP"),
    )
    assert json.loads(action.model_dump_json(exclude_none=True)) == {
        "op": "replace",
        "path": "/spec/containers/0/env/0",
        "value": {
            "name": "NODEIP",
            "valueFrom": {"fieldRef": {"fieldPath": "status.hostIP"}},
        },
    }


def test_patch_action_rejects_unknown_op():
    with pytest.raises(pydantic.ValidationError):
        PatchAction(op="remove", path="/metadata/labels/owner")


def test_response_encodes_patch():
    patch = Patch([PatchAction(op="add", path="/metadata/labels/owner", value="me")])
    res = AdmissionResponse(uid="1234", allowed=True, patchType="JSONPatch", patch=patch)
    assert json.loads(base64.b64decode(res.patch)) == [
        {"op": "add", "path": "/metadata/labels/owner", "value": "me"}
    ]


def test_response_rejects_invalid_patch():
    with pytest.raises(pydantic.ValidationError):
        AdmissionResponse(
            uid="1234",
            allowed=True,
            patchType="JSONPatch",
            patch=base64.b64encode(b'{"op": "add"}').decode(),
        )


def test_response_requires_patch_type():
    patch = Patch([PatchAction(op="add", path="/metadata/labels/owner", value="me")])
    with pytest.raises(pydantic.ValidationError, match="missing patchType"):
        AdmissionResponse(uid="1234", allowed=True, patch=patch)


def test_review_response_field_order():
    review = AdmissionReviewResponse(response=AdmissionResponse(uid="1234", allowed=True))
    assert review.model_dump_json(exclude_none=True) == (
        '{"kind":"AdmissionReview","apiVersion":"admission.k8s.io/v1",'
        '"response":{"uid":"1234","allowed":true}}'
    )


def test_review_without_request():
    review = AdmissionReview.model_validate_json("{}")
    assert review.request is None


def test_review_resource():
    review = AdmissionReview.model_validate(
        {
            "apiVersion": "admission.k8s.io/v1",
            "kind": "AdmissionReview",
            "request": {
                "uid": "1234",
                "namespace": "default",
                "operation": "CREATE",
                "resource": {"group": "", "version": "v1", "resource": "pods"},
            },
        }
    )
    assert review.request.resource == POD_RESOURCE


def test_pod_nulls_are_empty():
    pod = Pod.model_validate(
        {
            "metadata": {"labels": None, "creationTimestamp": None},
            "spec": {"containers": [{"image": "nginx:latest", "env": None}]},
            "status": {},
        }
    )
    assert pod.metadata.labels == {}
    assert pod.spec.containers[0].env == []

    pod = Pod.model_validate({"spec": {"containers": None}})
    assert pod.spec.containers == []


def test_pod_from_raw_object():
    raw = json.dumps({"metadata": {"labels": {"owner": "me"}}})
    assert Pod.from_object({"raw": raw}).metadata.labels == {"owner": "me"}


def test_pod_from_none():
    with pytest.raises(pydantic.ValidationError):
        Pod.from_object(None)
