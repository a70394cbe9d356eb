"""
Assessment blueprint
"""
from flask import Blueprint

assessment_bp = Blueprint('assessment', __name__)

from examcore.assessment import routes  # noqa: E402,F401
