from __future__ import annotations

import json
from datetime import date
from pathlib import Path

import click
from flask import Flask, render_template

from mirecurso.core.config import Config
from mirecurso.core.referencia import load_reference_data
from mirecurso.core.utils import fecha_legal, pesos, porcentaje
from mirecurso.formulario import api_bp, formulario_bp
from mirecurso.formulario.documento import build_documento, render_text, to_dict
from mirecurso.formulario.pdf import render_pdf
from mirecurso.formulario.persistence import JsonFileStorage, WizardPersistence
from mirecurso.formulario.store import WizardStore
from mirecurso.formulario.voz import HttpTranscriber


def create_app(config_object: type[Config] | None = None) -> Flask:
    app = Flask(__name__)
    app.config.from_object(config_object or Config)

    app.extensions["mirecurso.referencia"] = load_reference_data(app.config["REFERENCE_DATA_DIR"])
    app.extensions["mirecurso.transcriber"] = HttpTranscriber(
        app.config["TRANSCRIPTION_URL"],
        timeout=app.config["TRANSCRIPTION_TIMEOUT"],
    )

    app.add_template_filter(pesos, "pesos")
    app.add_template_filter(porcentaje, "porcentaje")
    app.add_template_filter(fecha_legal, "fecha_legal")

    app.register_blueprint(formulario_bp)
    app.register_blueprint(api_bp)

    register_cli(app)
    register_routes(app)
    return app


def register_routes(app: Flask) -> None:
    @app.get("/")
    def home():
        return render_template("home.html")

    @app.errorhandler(404)
    def not_found(_error):
        return render_template("errors/404.html"), 404

    @app.errorhandler(500)
    def server_error(_error):
        return render_template("errors/500.html"), 500


def register_cli(app: Flask) -> None:
    @app.cli.command("recurso-render")
    @click.option("--state", "state_path", type=click.Path(dir_okay=False), required=True, help="Saved wizard JSON file.")
    @click.option("--format", "formato", type=click.Choice(["txt", "pdf", "json"]), default="txt", show_default=True)
    @click.option("--output", type=click.Path(dir_okay=False), default=None, help="Output file (stdout when omitted).")
    def recurso_render(state_path: str, formato: str, output: str | None) -> None:
        """Render the recurso for a wizard state saved to a JSON file."""
        persistence = WizardPersistence(
            JsonFileStorage(state_path),
            app.config["WIZARD_STORAGE_KEY"],
            tuple(app.config.get("WIZARD_LEGACY_KEYS", ())),
        )
        store = WizardStore.from_config(app.config, app.extensions["mirecurso.referencia"], persistence)
        if not store.hydrate():
            raise click.ClickException(f"No hay un formulario guardado en {state_path}")
        caso = store.assemble_case_record()
        if caso is None:
            raise click.ClickException("El formulario esta incompleto: faltan pasos por completar")

        documento = build_documento(
            caso,
            store.referencia,
            umbral_desproporcion=store.umbral_desproporcion,
            plazo_dias=store.plazo_dias,
            edad_minima=store.edad_minima,
        )
        if formato == "pdf":
            if not output:
                raise click.ClickException("El formato pdf requiere --output")
            Path(output).write_bytes(render_pdf(documento))
            click.echo(f"Recurso escrito en {output}")
            return
        body = json.dumps(to_dict(documento), ensure_ascii=False, indent=2) if formato == "json" else render_text(documento)
        if output:
            Path(output).write_text(body, encoding="utf-8")
            click.echo(f"Recurso escrito en {output}")
        else:
            click.echo(body)

    @app.cli.command("umbrales")
    @click.option("--fecha", type=click.DateTime(formats=["%Y-%m-%d"]), default=None, help="Reference date (default today).")
    def umbrales(fecha) -> None:
        """Show the threshold table in force and its validity window."""
        referencia = app.extensions["mirecurso.referencia"]
        as_of = fecha.date() if fecha else date.today()
        tabla = referencia.thresholds_for(as_of)
        click.echo(f"{referencia.norma} - tabla {tabla.version}")
        click.echo(f"Vigencia: {tabla.vigencia_desde.isoformat()} a {tabla.vigencia_hasta.isoformat()}")
        click.echo(f"Tope avaluo fiscal: {pesos(tabla.tope_avaluo)}")
        click.echo(f"Valor UTA: {pesos(tabla.valor_uta)}")
        click.echo(f"Rebaja 100%: hasta {tabla.uta_rebaja_total} UTA ({pesos(tabla.ingreso_maximo_total)} anuales)")
        click.echo(f"Rebaja 50%: hasta {tabla.uta_rebaja_parcial} UTA ({pesos(tabla.ingreso_maximo_parcial)} anuales)")
        if not tabla.vigente_en(as_of):
            click.echo(f"ADVERTENCIA: la tabla no esta vigente al {as_of.isoformat()}; actualice umbrales.json", err=True)
