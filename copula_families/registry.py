from copula_families import clayton, comonotonic, frank, gaussian, gumbel, student_t
from copula_families.base import CopulaFamily

FAMILY_MODULES = {
    CopulaFamily.GAUSSIAN: gaussian,
    CopulaFamily.STUDENT_T: student_t,
    CopulaFamily.CLAYTON: clayton,
    CopulaFamily.GUMBEL: gumbel,
    CopulaFamily.FRANK: frank,
    CopulaFamily.COMONOTONIC: comonotonic,
}

DEFAULT_FAMILIES = tuple(FAMILY_MODULES)


def parse_family(family):
    """
    Accept a CopulaFamily or its string value ("gaussian", "t", ...).
    """
    if isinstance(family, CopulaFamily):
        return family
    try:
        return CopulaFamily(str(family).strip().lower())
    except ValueError:
        raise ValueError(
            f"Unsupported copula family: {family!r}. "
            f"Expected one of {[f.value for f in CopulaFamily]}."
        ) from None


def family_module(family):
    return FAMILY_MODULES[parse_family(family)]
