"""Builds the recurso de protección as a tree of sections and paragraphs.

Optional clauses are decided first and numbered afterwards, so the ordinal
of every paragraph follows from the clauses actually included.
"""
from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any

from mirecurso.core.models import (
    ESTADO_CIVIL_TEXTO,
    FUENTE_INGRESO_TEXTO,
    BeneficioActual,
    FuenteIngreso,
    RecursoCaso,
    RespuestaRSH,
    TipoPropietario,
)
from mirecurso.core.referencia import Precedente, Recurrido, ReferenceData, TipoRebaja
from mirecurso.core.utils import fecha_legal, ordinal, pesos, porcentaje

VARIANTE_ADJETIVO = "adjetivo_no_esencial"
VARIANTE_GENERAL = "general"

AVISO_LEGAL = (
    "Este documento fue generado automáticamente por mirecurso.cl como herramienta de apoyo basada en "
    "precedentes judiciales públicos. No constituye asesoría legal profesional ni reemplaza la consulta con "
    "un abogado. No garantizamos resultados, ya que cada caso es evaluado individualmente por los tribunales. "
    "El usuario es responsable de verificar la exactitud de los datos ingresados y de la presentación del "
    "recurso ante la autoridad competente."
)

_CALIDAD_PROPIETARIO = {
    TipoPropietario.UNICO: "único y legítimo propietario",
    TipoPropietario.CON_CONYUGE: "legítimo propietario, junto con mi cónyuge,",
    TipoPropietario.CON_HIJOS: "legítimo propietario, junto con mis hijos,",
    TipoPropietario.OTRO: "copropietario",
}

_REBAJA_TEXTO = {
    TipoRebaja.TOTAL: "la rebaja total (100%)",
    TipoRebaja.PARCIAL: "la rebaja parcial (50%)",
}


@dataclass(frozen=True)
class Parrafo:
    texto: str
    numero: str = ""
    items: tuple[str, ...] = ()
    estilo: str = "normal"

    @property
    def texto_numerado(self) -> str:
        return f"{self.numero} {self.texto}" if self.numero else self.texto


@dataclass(frozen=True)
class Seccion:
    clave: str
    titulo: str
    parrafos: tuple[Parrafo, ...]


@dataclass(frozen=True)
class Documento:
    titulo: str
    variante_precedente: str
    secciones: tuple[Seccion, ...]

    def seccion(self, clave: str) -> Seccion:
        for seccion in self.secciones:
            if seccion.clave == clave:
                return seccion
        raise KeyError(clave)


@dataclass(frozen=True)
class _Clausula:
    texto: str
    incluir: bool = True
    items: tuple[str, ...] = ()


def _numerar(clausulas: list[_Clausula], estilo: str) -> tuple[Parrafo, ...]:
    incluidas = [clausula for clausula in clausulas if clausula.incluir]
    parrafos = []
    for posicion, clausula in enumerate(incluidas, start=1):
        if estilo == "ordinal":
            numero = f"{ordinal(posicion)}:"
        elif estilo == "letra":
            numero = f"{chr(ord('a') + posicion - 1)})"
        else:
            numero = f"{posicion}."
        parrafos.append(Parrafo(texto=clausula.texto, numero=numero, items=clausula.items))
    return tuple(parrafos)


def enumerar(items: list[str]) -> str:
    if not items:
        return ""
    if len(items) == 1:
        return items[0]
    return f"{', '.join(items[:-1])} y {items[-1]}"


def _fuentes_texto(caso: RecursoCaso) -> str:
    economico = caso.datos_economicos
    textos = []
    for fuente in economico.fuentes_ingreso:
        texto = FUENTE_INGRESO_TEXTO[fuente]
        if fuente == FuenteIngreso.OTROS and economico.fuente_ingreso_otros:
            texto = f"{texto} ({economico.fuente_ingreso_otros})"
        textos.append(texto)
    return enumerar(textos)


def _inscripcion_texto(caso: RecursoCaso) -> str:
    inscripcion = caso.datos_propiedad.inscripcion
    if inscripcion is None:
        return ""
    partes = []
    if inscripcion.fojas:
        partes.append(f"a fojas {inscripcion.fojas}")
    if inscripcion.numero:
        partes.append(f"número {inscripcion.numero}")
    if inscripcion.anio:
        partes.append(f"del Registro de Propiedad del año {inscripcion.anio}")
    if inscripcion.conservador:
        partes.append(f"del Conservador de Bienes Raíces de {inscripcion.conservador}")
    if not partes:
        return ""
    return f" El dominio se encuentra inscrito {' '.join(partes)}."


def documentos_adjuntos(caso: RecursoCaso) -> list[str]:
    """Documents the filer must attach, in the order they are listed."""
    documentos = [
        "Copia de cédula de identidad del recurrente.",
        "Certificado de avalúo fiscal del inmueble emitido por el Servicio de Impuestos Internos.",
        "Copia de la boleta de contribuciones de bienes raíces.",
        "Liquidación de pensión o comprobante de ingresos del recurrente.",
    ]
    if caso.datos_economicos.esta_en_rsh == RespuestaRSH.SI:
        documentos.append("Cartola del Registro Social de Hogares.")
    procedimiento = caso.procedimiento_previo
    if procedimiento.presento_solicitud:
        documentos.append("Copia de la solicitud de rebaja presentada ante el Servicio de Impuestos Internos.")
    if procedimiento.recibio_denegatoria:
        documentos.append(f"Copia de la Resolución N° {procedimiento.numero_resolucion} que deniega la solicitud.")
    if caso.datos_contribuciones.tiene_giros_pendientes and caso.datos_contribuciones.giros:
        documentos.append("Copia de los giros de contribuciones impugnados.")
    if caso.datos_propiedad.inscripcion is not None:
        documentos.append("Certificado de dominio vigente del inmueble.")
    return documentos


def _suma() -> Seccion:
    return Seccion(
        "suma",
        "",
        (
            Parrafo("Recurso de protección.", numero="EN LO PRINCIPAL:", estilo="suma"),
            Parrafo("Acompaña documentos.", numero="PRIMER OTROSÍ:", estilo="suma"),
            Parrafo("Comparecencia personal.", numero="SEGUNDO OTROSÍ:", estilo="suma"),
        ),
    )


def _tribunal(caso: RecursoCaso) -> Seccion:
    ciudad = caso.corte.nombre.replace("Corte de Apelaciones de ", "").upper()
    return Seccion("tribunal", "", (Parrafo(f"ILTMA. CORTE DE APELACIONES DE {ciudad}", estilo="centrado"),))


def _comparecencia(caso: RecursoCaso, recurrido: Recurrido) -> Seccion:
    personal = caso.datos_personales
    contacto = ""
    if personal.telefono:
        contacto += f", teléfono {personal.telefono}"
    if personal.email:
        contacto += f", correo electrónico {personal.email}"
    recurrente = (
        f"{personal.nombre_completo.upper()}, {personal.nacionalidad}, "
        f"{ESTADO_CIVIL_TEXTO[personal.estado_civil]}, {personal.profesion.lower()}, "
        f"cédula nacional de identidad N° {personal.rut}, de {personal.edad} años de edad, "
        f"domiciliado en {personal.domicilio}, comuna de {personal.comuna}, Región {personal.region}"
        f"{contacto}, a US. ILTMA. respetuosamente digo:"
    )
    contra = (
        f"Que vengo en interponer recurso de protección en contra del {recurrido.nombre.upper()}, "
        f"RUT {recurrido.rut}, representado legalmente por su Director Nacional, don {recurrido.director}, "
        f"ambos domiciliados para estos efectos en {recurrido.domicilio}, comuna de {recurrido.comuna}, "
        f"Región {recurrido.region}, por el acto ilegal y arbitrario que a continuación se describe, "
        "consistente en el cobro del impuesto territorial sin considerar mi capacidad contributiva real, "
        "el cual vulnera las garantías constitucionales establecidas en el artículo 19, numerales 2°, 20° y 24° "
        "de la Constitución Política de la República."
    )
    return Seccion("comparecencia", "", (Parrafo(recurrente), Parrafo(contra)))


def _hechos(caso: RecursoCaso, umbral_desproporcion: float, plazo_dias: int) -> Seccion:
    personal = caso.datos_personales
    propiedad = caso.datos_propiedad
    economico = caso.datos_economicos
    contribuciones = caso.datos_contribuciones
    procedimiento = caso.procedimiento_previo
    validaciones = caso.validaciones
    pct = porcentaje(contribuciones.porcentaje_ingresos)

    destino = (
        "destinado a uso habitacional, constituyendo mi vivienda principal"
        if propiedad.destino_habitacional
        else "destinado a uso no habitacional"
    )
    inmueble = (
        f"Que soy {_CALIDAD_PROPIETARIO[propiedad.tipo_propietario]} del inmueble ubicado en "
        f"{propiedad.direccion}, comuna de {propiedad.comuna}, Región {propiedad.region}, identificado con "
        f"Rol de Avalúo N° {propiedad.rol_avaluo}, cuyo avalúo fiscal vigente asciende a la suma de "
        f"{pesos(propiedad.avaluo_fiscal)}, {destino}.{_inscripcion_texto(caso)}"
    )
    ingresos = (
        f"Que tengo {personal.edad} años de edad, esto es, soy una persona mayor conforme a la legislación "
        f"vigente, y mis ingresos mensuales ascienden aproximadamente a la suma de "
        f"{pesos(economico.ingreso_mensual)}, lo que equivale a un ingreso anual de "
        f"{pesos(economico.ingreso_anual)}, provenientes de {_fuentes_texto(caso)}."
    )
    cobro = (
        "Que actualmente el Servicio de Impuestos Internos me exige el pago de contribuciones de bienes raíces "
        f"por un monto de {pesos(contribuciones.contribucion_trimestral)} trimestrales, equivalentes a "
        f"{pesos(contribuciones.contribucion_anual)} anuales, lo que representa aproximadamente un {pct} de "
        "mis ingresos anuales totales."
    )
    desproporcion = (
        f"Que la carga tributaria descrita consume el {pct} de mis ingresos anuales, superando con creces el "
        f"{porcentaje(umbral_desproporcion, 0)} que razonablemente puede destinarse a este tributo, lo que "
        "configura una evidente y manifiesta desproporción entre el tributo exigido y mi capacidad "
        "contributiva real, poniendo en riesgo mi derecho de propiedad sobre el inmueble donde habito."
    )

    if economico.beneficio_actual == BeneficioActual.NINGUNO:
        beneficio = (
            "Que no cuento con ningún beneficio de rebaja de contribuciones, no obstante mi condición de "
            "persona mayor con ingresos limitados."
        )
    else:
        rebaja = "del 50%" if economico.beneficio_actual == BeneficioActual.PARCIAL_50 else "del 100%"
        beneficio = (
            f"Que si bien cuento con un beneficio de rebaja de contribuciones {rebaja}, este resulta "
            "manifiestamente insuficiente considerando mi condición de persona mayor con ingresos limitados."
        )
    if caso.tipo_rebaja in _REBAJA_TEXTO:
        beneficio += (
            f" Conforme a mis ingresos, cumplo el requisito de ingresos para acceder a "
            f"{_REBAJA_TEXTO[caso.tipo_rebaja]} que contempla la Ley N° 20.732."
        )
    if economico.esta_en_rsh == RespuestaRSH.SI and economico.tramo_rsh is not None:
        beneficio += (
            " Además, me encuentro inscrito en el Registro Social de Hogares, en el tramo del "
            f"{economico.tramo_rsh.value}% más vulnerable de la población."
        )

    unica = "Que el inmueble antes individualizado constituye mi única propiedad"
    unica += ", siendo mi vivienda habitual donde resido de manera permanente." if propiedad.destino_habitacional else "."

    giros = contribuciones.giros if contribuciones.tiene_giros_pendientes else ()
    giros_texto = (
        "Que el Servicio de Impuestos Internos ha emitido respecto del inmueble los siguientes giros de "
        "contribuciones, cuyo cobro impugno:"
    )
    giros_items = tuple(
        f"Giro N° {giro.numero}, de fecha {fecha_legal(giro.fecha)}, por un monto de {pesos(giro.monto)}."
        for giro in giros
    )

    solicitud = ""
    if procedimiento.presento_solicitud and procedimiento.fecha_solicitud:
        solicitud = (
            f"Que con fecha {fecha_legal(procedimiento.fecha_solicitud)} presenté ante el Servicio de Impuestos "
            "Internos una solicitud de rebaja del impuesto territorial conforme a la Ley N° 20.732."
        )
    denegatoria = ""
    if procedimiento.recibio_denegatoria and procedimiento.fecha_resolucion:
        motivo = (
            ", fundándose en que el avalúo fiscal del inmueble excede el tope legal"
            if validaciones.excede_tope_avaluo
            else ""
        )
        denegatoria = (
            f"Que mediante Resolución N° {procedimiento.numero_resolucion}, de fecha "
            f"{fecha_legal(procedimiento.fecha_resolucion)}, el Servicio de Impuestos Internos denegó mi "
            f"solicitud{motivo}, acto que motiva el presente recurso."
        )

    if procedimiento.recibio_denegatoria and validaciones.dentro_del_plazo:
        plazo = (
            f"Que el presente recurso se interpone dentro del plazo de {plazo_dias} días corridos contado desde "
            "la notificación de la resolución denegatoria antes individualizada."
        )
    else:
        plazo = (
            "Que el cobro de contribuciones constituye un acto de efectos permanentes, que se renueva con cada "
            f"cuota trimestral exigida, por lo que el presente recurso se interpone dentro del plazo de {plazo_dias} "
            "días corridos contado desde el último cobro."
        )

    clausulas = [
        _Clausula(inmueble),
        _Clausula(ingresos),
        _Clausula(cobro),
        _Clausula(desproporcion, validaciones.porcentaje_desproporcionado),
        _Clausula(beneficio),
        _Clausula(unica, not economico.tiene_otras_propiedades),
        _Clausula(giros_texto, bool(giros_items), giros_items),
        _Clausula(solicitud, bool(solicitud)),
        _Clausula(denegatoria, bool(denegatoria)),
        _Clausula(plazo),
    ]
    return Seccion("hechos", "I. LOS HECHOS", _numerar(clausulas, "ordinal"))


def _derecho(caso: RecursoCaso, edad_minima: int) -> Seccion:
    personal = caso.datos_personales
    validaciones = caso.validaciones
    pct = porcentaje(caso.datos_contribuciones.porcentaje_ingresos)

    requisitos = [f"tener {edad_minima} años o más (tengo {personal.edad} años)"]
    if caso.tipo_rebaja in _REBAJA_TEXTO:
        requisitos.append(f"percibir ingresos dentro del límite legal para {_REBAJA_TEXTO[caso.tipo_rebaja]}")
    if validaciones.es_habitacional:
        requisitos.append("destinar el inmueble a la habitación")
    ley = (
        "Que la Ley N° 20.732 establece la rebaja del impuesto territorial para personas mayores que cumplan "
        f"sus requisitos legales. En mi caso concurren los requisitos de {enumerar(requisitos)}."
    )
    if validaciones.excede_tope_avaluo:
        ley += (
            " El tope de avalúo fiscal, en cambio, opera solo como un límite cuantitativo del beneficio y no "
            "como un requisito esencial para acceder a él."
        )

    clausulas = [
        _Clausula(
            "Que el presente recurso se funda en lo dispuesto en el artículo 20 de la Constitución Política de "
            "la República, en relación con las garantías constitucionales consagradas en los numerales 2°, 20° "
            "y 24° del artículo 19 del mismo cuerpo normativo."
        ),
        _Clausula(
            "Que se vulnera el derecho a la igualdad ante la ley (artículo 19 N° 2), toda vez que se aplica un "
            "gravamen sin distinguir la situación particular de las personas mayores con ingresos limitados, "
            "generando una discriminación arbitraria respecto de quienes, encontrándose en similares "
            "condiciones, sí acceden a beneficios tributarios."
        ),
        _Clausula(
            "Que se vulnera el derecho a la igual repartición de los tributos y demás cargas públicas "
            "(artículo 19 N° 20), al imponer una carga tributaria manifiestamente desproporcionada e injusta en "
            f"relación con mi capacidad económica, dado que el pago de contribuciones consume un {pct} de mis "
            "ingresos anuales."
        ),
        _Clausula(
            "Que se vulnera el derecho de propiedad (artículo 19 N° 24), al establecer una carga que puede "
            "derivar en la imposibilidad de mantener la propiedad del inmueble, privándome de facto de mi "
            "vivienda."
        ),
        _Clausula(ley),
        _Clausula(
            "Que la Convención Interamericana sobre la Protección de los Derechos Humanos de las Personas "
            "Mayores, ratificada por Chile, reconoce el derecho a la independencia y autonomía (artículo 12) y "
            "el derecho a la vivienda (artículo 24) de las personas mayores."
        ),
    ]
    return Seccion("derecho", "II. EL DERECHO", _numerar(clausulas, "arabigo"))


def _precedente(caso: RecursoCaso, precedente: Precedente) -> tuple[str, Seccion]:
    cita = (
        f"Que la Iltma. {precedente.tribunal}, con fecha {fecha_legal(precedente.fecha)}, en causa Rol N° "
        f"{precedente.rol}, caratulada \"{precedente.caratula}\", acogió un recurso de protección interpuesto por "
        "una persona mayor en circunstancias análogas a las del presente caso."
    )
    firme = (
        "Dicha sentencia se encuentra firme y ejecutoriada, constituyendo un valioso precedente judicial "
        "plenamente aplicable al caso de autos."
        if precedente.sentencia_firme
        else "Dicha sentencia constituye un valioso precedente judicial plenamente aplicable al caso de autos."
    )
    if caso.validaciones.excede_tope_avaluo:
        variante = VARIANTE_ADJETIVO
        parrafos = (
            Parrafo(cita),
            Parrafo(precedente.argumento_clave),
            Parrafo(
                f"En el presente caso, el avalúo fiscal de mi inmueble, ascendente a "
                f"{pesos(caso.datos_propiedad.avaluo_fiscal)}, excede el tope de {pesos(caso.tope_avaluo)} "
                "establecido para el beneficio. Sin embargo, conforme al criterio de dicho fallo, tal tope es un "
                "requisito adjetivo, no esencial, que no puede privarme del beneficio cuando concurren los "
                "requisitos esenciales de edad, ingresos y destino habitacional."
            ),
            Parrafo(firme),
        )
    else:
        variante = VARIANTE_GENERAL
        parrafos = (
            Parrafo(
                f"{cita[:-1]}, estableciendo que el cobro de contribuciones de bienes raíces sin considerar la "
                "capacidad contributiva real de la persona mayor constituye un acto ilegal y arbitrario que "
                "vulnera las garantías constitucionales antes señaladas."
            ),
            Parrafo(firme),
        )
    return variante, Seccion("precedente", "III. PRECEDENTE JUDICIAL APLICABLE", parrafos)


def _petitorio(caso: RecursoCaso) -> Seccion:
    rol = caso.datos_propiedad.rol_avaluo
    contribuciones = caso.datos_contribuciones
    giros = contribuciones.giros if contribuciones.tiene_giros_pendientes else ()
    rebaja = _REBAJA_TEXTO.get(caso.tipo_rebaja, "la rebaja")
    clausulas = [
        _Clausula(
            "Tener por interpuesto recurso de protección en contra del Servicio de Impuestos Internos, en la "
            "persona de su Director Nacional."
        ),
        _Clausula("Ordenar al recurrido informar dentro del plazo legal."),
        _Clausula(
            "Acoger el presente recurso y declarar que el cobro de contribuciones de bienes raíces respecto del "
            f"inmueble Rol N° {rol} constituye un acto ilegal y arbitrario que vulnera las garantías "
            "constitucionales del recurrente."
        ),
        _Clausula(
            f"Como medida de protección, ordenar al Servicio de Impuestos Internos otorgar {rebaja} del impuesto "
            "territorial que en derecho corresponda conforme a la situación económica del recurrente."
        ),
        _Clausula(
            f"Dejar sin efecto los giros N° {enumerar([giro.numero for giro in giros])}, emitidos respecto del "
            "inmueble individualizado.",
            bool(giros),
        ),
        _Clausula("Condenar en costas al recurrido."),
    ]
    encabezado = (
        Parrafo(
            "POR TANTO, en mérito de lo expuesto y de conformidad con lo dispuesto en el artículo 20 de la "
            "Constitución Política de la República y el Auto Acordado de la Excma. Corte Suprema sobre "
            "tramitación y fallo del recurso de protección,"
        ),
        Parrafo("SOLICITO A US. ILTMA. se sirva:"),
    )
    return Seccion("petitorio", "IV. PETITORIO", encabezado + _numerar(clausulas, "arabigo"))


def _otrosies(caso: RecursoCaso) -> tuple[Seccion, Seccion]:
    primero = Seccion(
        "primer_otrosi",
        "PRIMER OTROSÍ:",
        (Parrafo("Solicito a US. Iltma. tener por acompañados los siguientes documentos:"),)
        + _numerar([_Clausula(texto) for texto in documentos_adjuntos(caso)], "arabigo"),
    )
    segundo = Seccion(
        "segundo_otrosi",
        "SEGUNDO OTROSÍ:",
        (
            Parrafo(
                "Solicito a US. Iltma. tener presente que comparezco personalmente, sin patrocinio de abogado, "
                "de conformidad con lo dispuesto en el artículo 2° de la Ley N° 18.120, sobre Comparecencia en "
                "Juicio, que permite la comparecencia personal ante las Cortes de Apelaciones en los recursos de "
                "protección constitucional."
            ),
        ),
    )
    return primero, segundo


def _firma(caso: RecursoCaso) -> Seccion:
    personal = caso.datos_personales
    return Seccion(
        "firma",
        "",
        (
            Parrafo("_______________________________________", estilo="firma"),
            Parrafo(personal.nombre_completo.upper(), estilo="firma"),
            Parrafo(f"RUT: {personal.rut}", estilo="firma"),
            Parrafo(
                f"En {caso.datos_propiedad.comuna}, a {fecha_legal(caso.fecha_referencia)}",
                estilo="lugar_fecha",
            ),
        ),
    )


def build_documento(
    caso: RecursoCaso,
    referencia: ReferenceData,
    *,
    umbral_desproporcion: float = 10.0,
    plazo_dias: int = 30,
    edad_minima: int = 60,
) -> Documento:
    variante, precedente = _precedente(caso, referencia.precedente)
    primer_otrosi, segundo_otrosi = _otrosies(caso)
    return Documento(
        titulo=f"Recurso de Protección - {caso.datos_personales.nombre_completo}",
        variante_precedente=variante,
        secciones=(
            _suma(),
            _tribunal(caso),
            _comparecencia(caso, referencia.recurrido),
            _hechos(caso, umbral_desproporcion, plazo_dias),
            _derecho(caso, edad_minima),
            precedente,
            _petitorio(caso),
            primer_otrosi,
            segundo_otrosi,
            _firma(caso),
            Seccion("aviso", "AVISO LEGAL", (Parrafo(AVISO_LEGAL, estilo="aviso"),)),
        ),
    )


def lineas(documento: Documento) -> list[str]:
    """Flatten the document into display lines, one paragraph per line."""
    salida: list[str] = []
    for seccion in documento.secciones:
        if salida:
            salida.append("")
        if seccion.titulo:
            salida.extend([seccion.titulo, ""])
        for index, parrafo in enumerate(seccion.parrafos):
            if index and parrafo.estilo not in {"suma", "firma"}:
                salida.append("")
            salida.append(parrafo.texto_numerado)
            salida.extend(f"    - {item}" for item in parrafo.items)
    return salida


def render_text(documento: Documento) -> str:
    return "\n".join(lineas(documento)) + "\n"


def to_dict(documento: Documento) -> dict[str, Any]:
    data = asdict(documento)
    for seccion in data["secciones"]:
        for parrafo in seccion["parrafos"]:
            parrafo["items"] = list(parrafo["items"])
        seccion["parrafos"] = list(seccion["parrafos"])
    data["secciones"] = list(data["secciones"])
    return data
