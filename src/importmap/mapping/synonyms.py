"""Static synonym dictionary and default caption set."""

from typing import Mapping, Optional, Sequence

from .models import CaptionSlot

# Captions offered when adding or renaming slots
AVAILABLE_CAPTIONS: tuple[str, ...] = (
    "Reference",
    "Org Unit",
    "Forename(s)",
    "Surname",
    "Email",
    "Job Title",
    "Manager Name",
    "Phone",
    "Department",
    "Location",
    "Start Date",
    "Employee ID",
    "First Name",
    "Last Name",
    "Full Name",
    "Username",
    "Role",
    "Status",
)

# Slots present on a fresh session: (caption, key_field, match_by_id)
DEFAULT_SLOTS: tuple[tuple[str, bool, bool], ...] = (
    ("Reference", True, True),
    ("Org Unit", False, False),
    ("Forename(s)", False, False),
    ("Surname", False, False),
    ("Email", False, False),
    ("Job Title", False, False),
    ("Manager Name", False, False),
)

# Canonical caption -> alternate phrasings seen in import headers.
# An exact synonym hit is treated as a certain match, so only list
# phrasings that unambiguously mean the caption.
CAPTION_SYNONYMS: dict[str, tuple[str, ...]] = {
    "Forename(s)": (
        "forename",
        "forenames",
        "first names",
        "firstname",
        "given name",
        "given names",
        "givenname",
        "given",
    ),
    "First Name": ("first name", "firstname", "forename", "given name", "givenname", "given"),
    "Surname": ("surname", "last name", "lastname", "family name", "familyname"),
    "Last Name": ("last name", "lastname", "surname", "family name", "familyname"),
    "Full Name": ("full name", "fullname", "name", "employee name", "staff name"),
    "Email": ("email", "e-mail", "mail", "electronic mail"),
    "Job Title": ("job title", "title", "position", "job role"),
    "Manager Name": ("manager", "line manager", "supervisor"),
    "Phone": ("phone", "telephone", "tel", "mobile", "cell"),
    "Department": ("department", "dept"),
    "Org Unit": (
        "org unit",
        "organisation unit",
        "organization unit",
        "business unit",
        "division",
        "org",
        "organization",
        "organisation",
    ),
    "Start Date": ("start date", "hire date", "commencement date", "joining date", "date started"),
    "Employee ID": (
        "employee id",
        "emp id",
        "employee number",
        "staff id",
        "worker id",
        "personnel number",
        "payroll number",
        "employee code",
        "emp no",
        "employee_no",
        "employeeid",
    ),
    "Reference": ("reference", "ref", "external id", "external reference"),
    "Username": ("username", "user name", "login", "login name"),
    "Role": ("role", "user role", "permission role"),
    "Status": ("status", "state", "active", "enabled", "inactive"),
    "Location": ("location", "site", "office"),
}


def get_synonyms(
    caption: str, synonyms: Optional[Mapping[str, Sequence[str]]] = None
) -> tuple[str, ...]:
    """Return the registered alternate phrasings for a caption (may be empty)."""
    table = CAPTION_SYNONYMS if synonyms is None else synonyms
    return tuple(table.get(caption, ()))


def default_slots() -> list[CaptionSlot]:
    """Build the seeded caption slots for a new session."""
    return [
        CaptionSlot(
            id=f"slot-{order}",
            caption=caption,
            order=order,
            key_field=key_field,
            match_by_id=match_by_id,
        )
        for order, (caption, key_field, match_by_id) in enumerate(DEFAULT_SLOTS)
    ]
