class OrchardError(Exception):
    """Base class for every error raised while registering or settling claims"""

    pass


class DuplicateRound(OrchardError):
    """Raise if a distributor attempts to overwrite an existing merkle root"""

    pass


class UnknownRound(OrchardError):
    """Raise if a claim references a round that was never registered"""

    pass


class InvalidProof(OrchardError):
    """Raise if the leaf and proof do not hash up to the round's root"""

    pass


class AlreadyClaimed(OrchardError):
    """Raise if the beneficiary has already claimed this round"""

    pass


class UnauthorizedClaimant(OrchardError):
    """Raise if the caller is not the beneficiary of the claim"""

    pass


class DispatchFailure(OrchardError):
    """Raise if the vault fails to move funds or a callback target reverts"""

    pass


class BadConfigException(Exception):
    pass


class MissingEnvironmentVariableException(Exception):
    pass
