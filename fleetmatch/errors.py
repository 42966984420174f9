"""Error taxonomy for the dispatch matching core.

Only boundary calls raise: configuration validation, source I/O and the
bounded matching scan.  Scoring and analysis degrade through documented
fallbacks instead.
"""


class DispatchError(Exception):
    pass


class ConfigurationError(DispatchError, RuntimeError):
    """Invalid dispatcher settings.  Fatal at startup, never caught."""


class NotFoundError(DispatchError, LookupError):
    def __init__(self, entity: str, entity_id: str):
        super().__init__(f"{entity} not found: {entity_id}")
        self.entity = entity
        self.entity_id = entity_id


class CapacityMismatchError(DispatchError):
    """Job weight exceeds what the vehicle can take.

    The engine reports this softly (capacity_match=False and a zero score);
    the class exists for callers that want to turn it into a hard failure.
    """

    def __init__(self, job_id: str, resource_id: str, required_kg: float, available_kg: float | None):
        super().__init__(
            f"job {job_id} needs {required_kg:.0f}kg, vehicle {resource_id} has "
            f"{'unknown' if available_kg is None else f'{available_kg:.0f}kg'} available"
        )
        self.job_id = job_id
        self.resource_id = resource_id
        self.required_kg = required_kg
        self.available_kg = available_kg


class ComputationTimeoutError(DispatchError, TimeoutError):
    retryable = True

    def __init__(self, timeout_seconds: float, stage: str):
        super().__init__(f"computation timeout after {timeout_seconds:g}s during {stage}")
        self.timeout_seconds = timeout_seconds
        self.stage = stage


class UpstreamDataError(DispatchError):
    """A cargo or vehicle fetch failed.  Distinct from 'no candidates'."""

    retryable = True

    def __init__(self, source: str, message: str):
        super().__init__(f"{source}: {message}")
        self.source = source
