import json
import logging

from typing_extensions import Protocol, override

from exc import ConfigurationError, MutationRejected
from models import EnvVar, PatchAction, PatchOp, Pod

LOG = logging.getLogger(__name__)


def json_patch_escape(val):
    return val.replace("~", "~0").replace("/", "~1")


class Mutator(Protocol):
    endpoint: str

    def mutate(self, pod: Pod) -> list[PatchAction]: ...


class LabelMutator(Mutator):
    """Add a label to pods that do not already have it.

    The patch adds a single key under /metadata/labels, so it only applies to
    pods that already carry a labels map.
    """

    def __init__(self, label_name: str, label_value: str):
        self.label_name = label_name
        self.label_value = label_value
        self.endpoint = f"/labels/{label_name}"

    @override
    def mutate(self, pod):
        if self.label_name in pod.metadata.labels:
            raise MutationRejected(f"pod has {self.label_name}")

        return [
            PatchAction(
                op=PatchOp.ADD,
                path=f"/metadata/labels/{json_patch_escape(self.label_name)}",
                value=self.label_value,
            )
        ]


class FieldRefEnvMutator(Mutator):
    """Set an environment variable in every container from a pod field.

    An existing variable of the same name is replaced, so that a literal value
    cannot shadow the field reference.
    """

    def __init__(self, env_name: str, field_path: str):
        self.env_name = env_name
        self.field_path = field_path
        self.endpoint = f"/env/{env_name.lower()}"

    def _container_op(self, index, container):
        var = EnvVar.from_field(self.env_name, self.field_path)
        base = f"/spec/containers/{index}/env"

        for j, existing in enumerate(container.env):
            if existing.name == self.env_name:
                return PatchAction(op=PatchOp.REPLACE, path=f"{base}/{j}", value=var)

        # There is no index to add at until the list exists.
        if not container.env:
            return PatchAction(op=PatchOp.ADD, path=base, value=[var])

        return PatchAction(
            op=PatchOp.ADD, path=f"{base}/{len(container.env)}", value=var
        )

    @override
    def mutate(self, pod):
        ops = [
            self._container_op(i, container)
            for i, container in enumerate(pod.spec.containers)
        ]
        LOG.debug("setting %s in %d containers", self.env_name, len(ops))
        return ops


def _as_str(val):
    return val if isinstance(val, str) else json.dumps(val)


def from_config(config) -> Mutator:
    """Build the mutator named by config["MUTATOR"].

    from_prefixed_env parses values as JSON, so a label value such as 1000
    arrives as an int; we turn such values back into the text that was set.
    """

    kind = config["MUTATOR"]
    if kind == "label":
        return LabelMutator(
            _as_str(config["LABEL_NAME"]), _as_str(config["LABEL_VALUE"])
        )
    elif kind == "env":
        return FieldRefEnvMutator(
            _as_str(config["ENV_NAME"]), _as_str(config["ENV_FIELD_PATH"])
        )

    raise ConfigurationError(f"unknown mutator: {kind}")
