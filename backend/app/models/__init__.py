# Importing the package registers every model with Base.metadata, which the
# string-based relationship targets ("Template", "subspecialty_templates") need.
from app.models.subspecialty import Subspecialty
from app.models.template import Template
from app.models.subspecialty_template import SubspecialtyTemplate

__all__ = ["Subspecialty", "Template", "SubspecialtyTemplate"]
