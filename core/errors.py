"""Domain errors shared by the stores, the summarizer and the pipelines."""


class ConfigurationError(RuntimeError):
    """A required credential or identifier is missing."""


class SummarizationError(RuntimeError):
    """The summarizer could not produce usable output."""


class DuplicateCommitError(RuntimeError):
    def __init__(self, repository: str, sha: str):
        super().__init__(f"Commit {sha} already stored for {repository}")
        self.repository = repository
        self.sha = sha


class CommitNotFoundError(LookupError):
    pass


class InvalidCursorError(ValueError):
    pass
