from flask import Blueprint

from mirecurso.formulario.contexto import flush_wizard, load_wizard_context

formulario_bp = Blueprint("formulario", __name__, url_prefix="/formulario")
api_bp = Blueprint("api", __name__, url_prefix="/api")

formulario_bp.before_request(load_wizard_context)
formulario_bp.after_request(flush_wizard)

from mirecurso.formulario import routes  # noqa: E402,F401
