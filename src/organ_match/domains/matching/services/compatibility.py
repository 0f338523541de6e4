"""
Blood type and organ compatibility rules

The donation table below is the one this service matches on. It is an
approximation kept as-is, not a full medical compatibility model.
"""

from typing import List

BLOOD_TYPES = ('A+', 'A-', 'B+', 'B-', 'AB+', 'AB-', 'O+', 'O-')

# Donor blood type -> recipient blood types it can donate to
COMPATIBILITY = {
    'O-': frozenset(BLOOD_TYPES),  # Universal donor
    'O+': frozenset({'O+', 'A+', 'B+', 'AB+'}),
    'A-': frozenset({'A-', 'A+', 'AB-', 'AB+'}),
    'A+': frozenset({'A+', 'AB+'}),
    'B-': frozenset({'B-', 'B+', 'AB-', 'AB+'}),
    'B+': frozenset({'B+', 'AB+'}),
    'AB-': frozenset({'AB-', 'AB+'}),
    'AB+': frozenset({'AB+'}),
}


def is_blood_compatible(donor_type, recipient_type) -> bool:
    """
    Check if a donor blood type can donate to a recipient blood type.

    Unknown or malformed codes are never compatible.
    """
    if not isinstance(donor_type, str) or not isinstance(recipient_type, str):
        return False
    allowed = COMPATIBILITY.get(donor_type)
    if allowed is None:
        return False
    return recipient_type in allowed


def has_organ(donor, organ, ignore_case: bool = False) -> bool:
    """True if the donor offers the organ"""
    if ignore_case:
        if not isinstance(organ, str):
            return False
        wanted = organ.casefold()
        return any(isinstance(offered, str) and offered.casefold() == wanted for offered in donor.organs or ())
    return organ in (donor.organs or ())


def compatible_donor_types(recipient_type) -> List[str]:
    """Blood types that can donate to the recipient blood type"""
    return [
        donor_type
        for donor_type in BLOOD_TYPES
        if recipient_type in COMPATIBILITY[donor_type]
    ]
