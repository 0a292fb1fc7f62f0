class RcFiltersError(Exception):
    """Base exception for all rcfilters errors"""
    pass

class ConfigError(RcFiltersError):
    """Invalid or inconsistent global.json or filter structure file"""
    pass

class TaxonomyError(RcFiltersError):
    """
    Filter structure doesn't describe a usable taxonomy
    unknown group type, duplicate filter names, empty single-option group, etc
    """
    pass
