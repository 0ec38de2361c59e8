from typing import NamedTuple
from enum import Enum
import resource


class LimitType(Enum):
	Files = resource.RLIMIT_NOFILE


# Each connection holds a socket and possibly an open file, so a file server
# wants a generous open files limit.
REASONABLE_LIMITS: dict[LimitType, int] = {
	LimitType.Files: 10 * 10240,
}


class Limit(NamedTuple):
	type: LimitType
	soft: int
	hard: int


def limit(scope: LimitType) -> Limit:
	return Limit(scope, *resource.getrlimit(scope.value))


def unlimit(
	scope: LimitType, ratio: float = 1.0, *, maximum: int | None = 0
) -> int | bool:
	"""Raises the soft limit towards the hard limit, returning the new soft
	limit or `False` when it could not be changed."""
	lm = limit(scope)
	if lm.soft == resource.RLIM_INFINITY:
		return lm.soft
	hard = lm.hard
	# RLIM_INFINITY is usually -1, we cap it to the reasonable limit.
	if hard == resource.RLIM_INFINITY:
		hard = REASONABLE_LIMITS.get(scope, lm.soft)
	try:
		target = int(lm.soft + ratio * (hard - lm.soft))
		# We apply reasonable limits, as for instance Darwin has really high
		# limits that will lead to OverflowErrors.
		maximum = REASONABLE_LIMITS.get(scope) if maximum == 0 else maximum
		if maximum:
			target = min(maximum, target)
		target = max(target, lm.soft)
		resource.setrlimit(scope.value, (target, lm.hard))
		return target
	except (ValueError, OSError):
		return False


# EOF
