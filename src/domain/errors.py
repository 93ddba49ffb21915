"""Template store error hierarchy."""


class TemplateStoreError(Exception):
    """Base class for all template store failures."""

    status_code = 500

    def __init__(self, message: str, **context: object) -> None:
        super().__init__(message)
        self.message = message
        self.context = context


class ValidationError(TemplateStoreError):
    """A required identifier (template name, config key) is missing."""

    status_code = 400


class NotFound(TemplateStoreError):
    """Template referenced by name does not exist."""

    status_code = 404

    def __init__(self, name: str) -> None:
        super().__init__("Template not found", name=name)
        self.name = name


class NameCollision(TemplateStoreError):
    """Rename target is already taken by another template."""

    status_code = 409

    def __init__(self, name: str) -> None:
        super().__init__("A template with that name already exists", name=name)
        self.name = name


class StoreUnavailable(TemplateStoreError):
    """PostgreSQL cannot be reached or a query failed for infrastructure reasons."""

    status_code = 503
