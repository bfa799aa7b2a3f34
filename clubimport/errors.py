"""Exceptions raised by the import pipeline."""


class ImportPipelineError(Exception):
    """Base class for all import pipeline errors."""


class ParseError(ImportPipelineError):
    """The sheet is unreadable or holds no data rows."""


class RepositoryError(ImportPipelineError):
    """A write was rejected by the persistence layer."""


class WizardStateError(ImportPipelineError):
    """An event was sent to the wizard in a step that does not accept it."""


class ResolutionIncomplete(ImportPipelineError):
    """Some missing references still lack valid provisioning attributes.

    Args:
        incomplete: Reference name -> list of problems.
    """

    def __init__(self, incomplete: dict[str, list[str]]):
        self.incomplete = incomplete
        names = ', '.join(sorted(incomplete))
        super().__init__(f"Missing or invalid attributes for: {names}")
