"""Exception types raised by the prompt pipeline."""


class StorySeedError(Exception):
    """Base class for StorySeed errors."""


class NoEligibleTarget(StorySeedError):
    """No book or story element is available to prompt about."""


class GenerationProviderError(StorySeedError, RuntimeError):
    """The text-generation call failed (network, auth, rate limit, bad payload)."""


class PersistenceError(StorySeedError):
    """Reading from or writing to the database failed."""


class DuplicateDeliveryConflict(StorySeedError):
    """A non-test delivery already exists for this user today."""


class DeliveryProviderError(StorySeedError):
    """The email transport did not accept the message."""
