from __future__ import annotations

from flask import abort, current_app, flash, g, jsonify, make_response, redirect, render_template, request, url_for

from mirecurso.formulario import api_bp, formulario_bp
from mirecurso.formulario.contexto import get_referencia, get_transcriber
from mirecurso.formulario.documento import build_documento, documentos_adjuntos, render_text, to_dict
from mirecurso.formulario.pdf import render_pdf
from mirecurso.formulario.steps import (
    CONTROLLERS,
    ContributionsStep,
    OutputStep,
    ReviewStep,
    StepController,
    StepOutcome,
    controller_for,
    nombre_archivo,
)
from mirecurso.formulario.store import DOMAINS
from mirecurso.formulario.voz import NoAudioError, NoSpeechError, TranscriptionError, TranscriptionUnavailable

PASOS = [(numero, controller.titulo) for numero, controller in sorted(CONTROLLERS.items())]
FORMATOS = {"txt", "pdf", "json"}


def _redirect_to(outcome: StepOutcome):
    params = {"numero": outcome.paso}
    if outcome.sub_paso:
        params["sub_paso"] = outcome.sub_paso
    return redirect(url_for("formulario.paso", **params))


def _render_step(controller: StepController, outcome: StepOutcome):
    wizard = g.wizard
    common = {
        "pasos": PASOS,
        "paso_actual": controller.numero,
        "controller": controller,
        "errores": outcome.errores,
        "porcentaje_completado": wizard.porcentaje_completado(),
        "is_step_accessible": wizard.is_step_accessible,
    }
    if isinstance(controller, ReviewStep):
        resumen = controller.resumen()
        if resumen is None:
            return redirect(url_for("formulario.paso", numero=wizard.furthest_accessible_step()))
        return render_template("formulario/revision.html", resumen=resumen, **common)
    if isinstance(controller, OutputStep):
        caso = controller.caso()
        if caso is None:
            return redirect(url_for("formulario.paso", numero=wizard.furthest_accessible_step()))
        return render_template(
            "formulario/descarga.html",
            caso=caso,
            adjuntos=documentos_adjuntos(caso),
            nombre_archivo=nombre_archivo(caso),
            **common,
        )

    sub_index = controller.clamp_sub_paso(outcome.sub_paso)
    datos = controller.datos()
    region = datos.get("region")
    contexto = {
        "sub_paso": controller.sub_pasos[sub_index],
        "sub_index": sub_index,
        "sub_total": len(controller.sub_pasos),
        "datos": datos,
        "regiones": get_referencia().regiones,
        "comunas": get_referencia().communes_for_region(region),
        "resumen": controller.resumen() if isinstance(controller, ContributionsStep) else None,
    }
    return render_template("formulario/paso.html", **contexto, **common)


@formulario_bp.get("/")
def inicio():
    return redirect(url_for("formulario.paso", numero=g.wizard.current_step))


@formulario_bp.route("/paso-<int:numero>", methods=["GET", "POST"])
def paso(numero: int):
    try:
        controller = controller_for(numero, g.wizard)
    except ValueError:
        abort(404)

    if request.method == "POST":
        sub_paso = controller.clamp_sub_paso(request.form.get("sub_paso", 0))
        if request.form.get("action") == "anterior":
            outcome = controller.back(sub_paso)
        else:
            outcome = controller.advance(request.form, sub_paso)
        if outcome.ok and (outcome.redirect or outcome.paso != numero or outcome.sub_paso != sub_paso):
            return _redirect_to(outcome)
        return _render_step(controller, outcome)

    outcome = controller.enter()
    if outcome.redirect:
        return _redirect_to(outcome)
    outcome.sub_paso = controller.clamp_sub_paso(request.args.get("sub_paso", 0))
    return _render_step(controller, outcome)


@formulario_bp.post("/campo")
def commit_field():
    payload = request.get_json(silent=True) or request.form
    dominio = (payload.get("dominio") or "").strip()
    campo = (payload.get("campo") or "").strip()
    if dominio not in DOMAINS or not campo:
        return jsonify({"ok": False, "error": "Campo desconocido"}), 400
    error = g.wizard.commit_field(dominio, campo, payload.get("valor"))
    return jsonify({"ok": error is None, "campo": campo, "error": error})


@formulario_bp.post("/nuevo")
def nuevo():
    confirm = (request.form.get("confirm") or "").strip().upper()
    if confirm != "NUEVO":
        flash("Confirmacion invalida. Escriba NUEVO para comenzar un recurso nuevo", "error")
        return redirect(url_for("formulario.paso", numero=g.wizard.current_step))
    g.wizard.reset()
    flash("Se borraron los datos guardados. Puede comenzar un recurso nuevo.", "success")
    return redirect(url_for("formulario.paso", numero=1))


@formulario_bp.get("/recuperar")
def recuperar():
    wizard = g.wizard
    return jsonify(
        {
            "hay_datos": wizard.has_saved_progress(),
            "paso_actual": wizard.current_step,
            "nombre_completo": wizard.datos("personal").get("nombre_completo") or "",
            "porcentaje_completado": wizard.porcentaje_completado(),
        }
    )


@formulario_bp.get("/comunas")
def comunas():
    region = request.args.get("region", "")
    return jsonify({"region": region, "comunas": get_referencia().communes_for_region(region)})


@formulario_bp.get("/recurso.<formato>")
def recurso(formato: str):
    if formato not in FORMATOS:
        abort(404)
    wizard = g.wizard
    caso = OutputStep(wizard).caso()
    if caso is None:
        return redirect(url_for("formulario.paso", numero=wizard.furthest_accessible_step()))

    try:
        documento = build_documento(
            caso,
            get_referencia(),
            umbral_desproporcion=wizard.umbral_desproporcion,
            plazo_dias=wizard.plazo_dias,
            edad_minima=wizard.edad_minima,
        )
        if formato == "json":
            return jsonify(to_dict(documento))
        if formato == "pdf":
            body = render_pdf(documento)
            content_type = "application/pdf"
        else:
            body = render_text(documento)
            content_type = "text/plain; charset=utf-8"
    except Exception:
        current_app.logger.exception("Fallo la generacion del recurso (%s)", formato)
        flash("No pudimos generar el documento. Sus datos siguen guardados; intente nuevamente.", "error")
        return redirect(url_for("formulario.paso", numero=7))

    response = make_response(body)
    response.headers["Content-Type"] = content_type
    response.headers["Content-Disposition"] = f'attachment; filename="{nombre_archivo(caso, formato)}"'
    return response


@api_bp.post("/transcribe")
def transcribe():
    audio = request.files.get("audio")
    data = audio.read() if audio else b""
    mimetype = audio.mimetype if audio else ""
    try:
        texto = get_transcriber().transcribe(data, mimetype, request.form.get("language", "es-CL"))
    except (NoAudioError, NoSpeechError) as exc:
        return jsonify({"error": exc.code, "mensaje": exc.message}), 400
    except TranscriptionUnavailable as exc:
        return jsonify({"error": exc.code, "mensaje": exc.message}), 503
    except TranscriptionError as exc:
        return jsonify({"error": exc.code, "mensaje": exc.message}), 502
    return jsonify({"text": texto})
