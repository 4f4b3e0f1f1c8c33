"""Mock backend for the medical appointment client.

Flask server with in-memory data for:
- Login, registration and session lookup
- Doctor directory and profiles
- Blocked days / ranges and month calendars
- Slot lookup and appointment booking
- Appointment state changes for patients and doctors

Run with: python mock_api.py
"""
import calendar
import secrets
from copy import deepcopy
from datetime import date, datetime, timedelta
from functools import wraps

from flask import Flask, g, jsonify, request
from flask_cors import CORS

from medicitas import config
from medicitas.auth import EMAIL_PATTERN
from medicitas.logging_config import setup_structured_logging

app = Flask(__name__)
CORS(app)

WORKING_HOURS = {
    "days": ["monday", "tuesday", "wednesday", "thursday", "friday"],
    "start_time": "09:00",
    "end_time": "17:00",
    "slot_duration_minutes": config.DEFAULT_SLOT_MINUTES,
}

# Backend-side transitions for PUT /medicos/cita/<id>
DOCTOR_TRANSITIONS = {
    ("pendiente", "confirmada"),
    ("pendiente", "rechazada"),
    ("pendiente", "cancelada"),
    ("confirmada", "completada"),
    ("confirmada", "cancelada"),
}

# Slots held by these states cannot be booked again
ACTIVE_STATES = {"pendiente", "confirmada"}

SEED_USERS = [
    {"id": 1, "email": "paciente@example.com", "password": "paciente123", "roleId": 1,
     "nombre": "Laura", "apellido": "Pérez", "telefono": "600111222", "paciente_id": 1},
    {"id": 2, "email": "ana.garcia@example.com", "password": "medico123", "roleId": 2,
     "nombre": "Ana", "apellido": "García", "telefono": "600333444", "medico_id": 1},
    {"id": 3, "email": "luis.martin@example.com", "password": "medico123", "roleId": 2,
     "nombre": "Luis", "apellido": "Martín", "telefono": "600555666", "medico_id": 2},
    {"id": 4, "email": "sara.lopez@example.com", "password": "medico123", "roleId": 2,
     "nombre": "Sara", "apellido": "López", "telefono": "600777888", "medico_id": 3},
]

SEED_DOCTORS = [
    {"id": 1, "usuario_id": 2, "especialidad": "Cardiología",
     "descripcion": "Especialista en enfermedades del corazón", "activo": True},
    {"id": 2, "usuario_id": 3, "especialidad": "Dermatología",
     "descripcion": "Tratamiento de la piel", "activo": True},
    {"id": 3, "usuario_id": 4, "especialidad": "Pediatría",
     "descripcion": "Atención infantil", "activo": True},
]

# In-memory storage
users = []
doctors = []
patients = []
blocked_intervals = []
appointments = []
tokens = {}
counters = {}


def reset_state():
    """Restore the seed data. Used by tests and on startup."""
    users[:] = deepcopy(SEED_USERS)
    doctors[:] = deepcopy(SEED_DOCTORS)
    patients[:] = [{"id": 1, "usuario_id": 1}]
    blocked_intervals.clear()
    appointments.clear()
    tokens.clear()
    counters.update({"user": 100, "doctor": 100, "patient": 100, "interval": 1000, "cita": 5000})


def next_id(kind):
    counters[kind] += 1
    return counters[kind]


def error(message, status):
    return jsonify({"success": False, "error": message}), status


def ok(data=None, status=200, **extra):
    body = {"success": True, "data": data}
    body.update(extra)
    return jsonify(body), status


def parse_day(value):
    try:
        return date.fromisoformat(str(value))
    except ValueError:
        return None


def public_user(user):
    """User as returned by login and /auth/me."""
    return {
        "userId": user["id"],
        "email": user["email"],
        "roleId": user["roleId"],
        "rol_nombre": "MEDICO" if user["roleId"] == 2 else "PACIENTE",
        "name": user["nombre"],
        "apellido": user["apellido"],
        "telefono": user.get("telefono"),
        "paciente_id": user.get("paciente_id"),
        "medico_id": user.get("medico_id"),
    }


def find_user(user_id):
    return next((u for u in users if u["id"] == user_id), None)


def find_doctor(medico_id):
    return next((d for d in doctors if d["id"] == medico_id), None)


def find_appointment(cita_id):
    return next((c for c in appointments if c["id"] == cita_id), None)


def doctor_view(doctor):
    user = find_user(doctor["usuario_id"]) or {}
    return {
        **doctor,
        "usuario": {
            "nombre": user.get("nombre"),
            "apellido": user.get("apellido"),
            "email": user.get("email"),
            "telefono": user.get("telefono"),
        },
    }


def patient_view(paciente_id):
    patient = next((p for p in patients if p["id"] == paciente_id), None)
    if patient is None:
        return None
    user = find_user(patient["usuario_id"]) or {}
    return {"id": paciente_id, "usuario": {
        "nombre": user.get("nombre"), "apellido": user.get("apellido"),
        "email": user.get("email"), "telefono": user.get("telefono"),
    }}


def appointment_view(cita):
    view = dict(cita)
    doctor = find_doctor(cita["medico_id"])
    view["medico"] = doctor_view(doctor) if doctor else None
    view["paciente"] = patient_view(cita["paciente_id"])
    return view


def require_auth(func):
    """Resolve the bearer token into g.user or answer 401."""
    @wraps(func)
    def wrapper(*args, **kwargs):
        header = request.headers.get("Authorization", "")
        token = header[7:] if header.startswith("Bearer ") else None
        user = find_user(tokens.get(token)) if token else None
        if user is None:
            return error("Token inválido o expirado", 401)
        g.user = user
        return func(*args, **kwargs)
    return wrapper


def issue_token(user):
    token = secrets.token_hex(16)
    tokens[token] = user["id"]
    return token


def blocking_interval(medico_id, day):
    return next(
        (
            interval for interval in blocked_intervals
            if interval["medico_id"] == medico_id
            and interval["fecha_inicio"] <= day.isoformat() <= interval["fecha_fin"]
        ),
        None,
    )


def generate_time_slots(medico_id, day):
    """Free slots of a doctor on one day, minus booked ones.

    Returns:
        (slots, reason) where reason explains an empty result
    """
    if blocking_interval(medico_id, day):
        return [], "El médico no está disponible en esta fecha"
    if day.strftime("%A").lower() not in WORKING_HOURS["days"]:
        return [], "El médico no atiende este día"

    booked = {
        c["hora_inicio"] for c in appointments
        if c["medico_id"] == medico_id and c["fecha"] == day.isoformat()
        and c["estado"] in ACTIVE_STATES
    }

    step = timedelta(minutes=WORKING_HOURS["slot_duration_minutes"])
    current = datetime.combine(day, datetime.strptime(WORKING_HOURS["start_time"], "%H:%M").time())
    end = datetime.combine(day, datetime.strptime(WORKING_HOURS["end_time"], "%H:%M").time())
    now = datetime.now()

    slots = []
    while current + step <= end:
        label = current.strftime("%H:%M")
        # Skip past times for today
        if current > now and label not in booked:
            slots.append({"hora_inicio": label, "hora_fin": (current + step).strftime("%H:%M")})
        current += step

    if not slots:
        return [], "No hay horarios disponibles para esta fecha"
    return slots, None


# ---------------------------------------------------------------- auth

@app.route("/api/auth/login", methods=["POST"])
def login():
    data = request.json or {}
    user = next((u for u in users if u["email"] == data.get("email")), None)
    if user is None or user["password"] != data.get("password"):
        return error("Credenciales inválidas", 401)
    return jsonify({"success": True, "token": issue_token(user), "user": public_user(user)})


def create_user(data, role_id):
    for field in ("email", "password", "name", "apellido"):
        if not data.get(field):
            return None, error(f"Falta el campo requerido: {field}", 400)
    if not EMAIL_PATTERN.match(data["email"]):
        return None, error("Formato de email inválido", 400)
    if any(u["email"] == data["email"] for u in users):
        return None, error("El email ya está registrado", 409)

    user = {
        "id": next_id("user"),
        "email": data["email"],
        "password": data["password"],
        "roleId": role_id,
        "nombre": data["name"],
        "apellido": data["apellido"],
        "telefono": data.get("telefono"),
    }
    users.append(user)
    return user, None


@app.route("/api/auth/register", methods=["POST"])
def register():
    user, failure = create_user(request.json or {}, 1)
    if failure:
        return failure
    patient = {"id": next_id("patient"), "usuario_id": user["id"]}
    patients.append(patient)
    user["paciente_id"] = patient["id"]
    return jsonify({"success": True, "token": issue_token(user), "user": public_user(user)}), 201


@app.route("/api/auth/register-medico", methods=["POST"])
def register_medico():
    data = request.json or {}
    if not data.get("especialidad"):
        return error("Falta el campo requerido: especialidad", 400)
    user, failure = create_user(data, 2)
    if failure:
        return failure
    doctor = {
        "id": next_id("doctor"),
        "usuario_id": user["id"],
        "especialidad": data["especialidad"],
        "descripcion": data.get("descripcion"),
        "activo": True,
    }
    doctors.append(doctor)
    user["medico_id"] = doctor["id"]
    return jsonify({"success": True, "token": issue_token(user), "user": public_user(user)}), 201


@app.route("/api/auth/me", methods=["GET"])
@require_auth
def me():
    return jsonify({"success": True, "user": public_user(g.user)})


# ------------------------------------------------------------- doctors

@app.route("/api/medicos", methods=["GET"])
def list_medicos():
    especialidad = request.args.get("especialidad")
    rows = [
        doctor_view(d) for d in doctors
        if d["activo"] and (not especialidad or d["especialidad"] == especialidad)
    ]
    return ok(rows, count=len(rows))


@app.route("/api/medicos/<int:medico_id>", methods=["GET"])
def get_medico(medico_id):
    doctor = find_doctor(medico_id)
    if doctor is None:
        return error("Médico no encontrado", 404)
    return ok(doctor_view(doctor))


@app.route("/api/medicos/<int:medico_id>", methods=["PUT"])
@require_auth
def update_medico(medico_id):
    doctor = find_doctor(medico_id)
    if doctor is None:
        return error("Médico no encontrado", 404)
    if g.user.get("medico_id") != medico_id:
        return error("No autorizado", 403)

    data = request.json or {}
    user = find_user(doctor["usuario_id"])
    for key in ("especialidad", "descripcion", "foto_perfil"):
        if key in data:
            doctor[key] = data[key]
    for key in ("nombre", "apellido", "telefono", "email"):
        if key in data:
            user[key] = data[key]
    return ok(doctor_view(doctor))


# -------------------------------------------------------- availability

def require_own_calendar(medico_id):
    if find_doctor(medico_id) is None:
        return error("Médico no encontrado", 404)
    if g.user.get("medico_id") != medico_id:
        return error("No autorizado", 403)
    return None


def read_range(data):
    start = parse_day(data.get("fechaInicio"))
    end = parse_day(data.get("fechaFin"))
    if start is None or end is None:
        return None, None, error("fechaInicio y fechaFin son requeridas (YYYY-MM-DD)", 400)
    if end < start:
        return None, None, error("fechaFin debe ser posterior a fechaInicio", 400)
    return start, end, None


def add_interval(medico_id, start, end):
    interval = {
        "id": next_id("interval"),
        "medico_id": medico_id,
        "fecha_inicio": start.isoformat(),
        "fecha_fin": end.isoformat(),
        "disponible": False,
    }
    blocked_intervals.append(interval)
    return interval


@app.route("/api/medicos/<int:medico_id>/disponibilidad", methods=["POST"])
@require_auth
def block_day(medico_id):
    failure = require_own_calendar(medico_id)
    if failure:
        return failure
    day = parse_day((request.json or {}).get("fecha"))
    if day is None:
        return error("Fecha inválida", 400)
    if blocking_interval(medico_id, day):
        return error("La fecha ya está marcada como no disponible", 400)
    interval = add_interval(medico_id, day, day)
    return ok({**interval, "fecha": day.isoformat()}, status=201)


@app.route("/api/medicos/<int:medico_id>/disponibilidad-rango", methods=["POST"])
@require_auth
def block_range(medico_id):
    failure = require_own_calendar(medico_id)
    if failure:
        return failure
    start, end, failure = read_range(request.json or {})
    if failure:
        return failure
    interval = add_interval(medico_id, start, end)
    return ok(interval, status=201, message="Rango marcado como no disponible")


@app.route("/api/medicos/<int:medico_id>/disponibilidad-rango", methods=["DELETE"])
@require_auth
def unblock_range(medico_id):
    failure = require_own_calendar(medico_id)
    if failure:
        return failure
    start, end, failure = read_range(request.json or {})
    if failure:
        return failure

    removed = 0
    for interval in list(blocked_intervals):
        if interval["medico_id"] != medico_id:
            continue
        first = date.fromisoformat(interval["fecha_inicio"])
        last = date.fromisoformat(interval["fecha_fin"])
        if last < start or first > end:
            continue
        blocked_intervals.remove(interval)
        removed += 1
        # Keep the parts of the interval outside the released range
        if first < start:
            add_interval(medico_id, first, start - timedelta(days=1))
        if last > end:
            add_interval(medico_id, end + timedelta(days=1), last)
    return ok({"eliminados": removed})


@app.route("/api/medicos/<int:medico_id>/disponibilidades", methods=["GET"])
@require_auth
def list_blocked(medico_id):
    if find_doctor(medico_id) is None:
        return error("Médico no encontrado", 404)
    start = parse_day(request.args.get("fechaInicio", "")) or date.min
    end = parse_day(request.args.get("fechaFin", "")) or date.max
    rows = [
        interval for interval in blocked_intervals
        if interval["medico_id"] == medico_id
        and interval["fecha_inicio"] <= end.isoformat()
        and interval["fecha_fin"] >= start.isoformat()
    ]
    rows.sort(key=lambda interval: interval["fecha_inicio"])
    return ok(rows, count=len(rows))


@app.route("/api/medicos/disponibilidad/<int:interval_id>", methods=["DELETE"])
@require_auth
def unblock_day(interval_id):
    interval = next((i for i in blocked_intervals if i["id"] == interval_id), None)
    if interval is None:
        return error("Disponibilidad no encontrada", 404)
    if g.user.get("medico_id") != interval["medico_id"]:
        return error("No autorizado", 403)
    blocked_intervals.remove(interval)
    return ok(None, message="Fecha marcada como disponible")


@app.route("/api/medicos/<int:medico_id>/calendario", methods=["GET"])
@require_auth
def month_calendar(medico_id):
    if find_doctor(medico_id) is None:
        return error("Médico no encontrado", 404)
    today = date.today()
    mes = request.args.get("mes", today.month, type=int)
    ano = request.args.get("ano", today.year, type=int)
    if not 1 <= mes <= 12:
        return error("Mes inválido", 400)

    dias = {}
    for number in range(1, calendar.monthrange(ano, mes)[1] + 1):
        day = date(ano, mes, number)
        interval = blocking_interval(medico_id, day)
        dias[str(number)] = {
            "fecha": day.isoformat(),
            "disponible": interval is None,
            "detalleId": interval["id"] if interval else None,
        }
    unavailable = sum(1 for value in dias.values() if not value["disponible"])
    return ok({
        "mes": mes,
        "ano": ano,
        "calendario": dias,
        "dias_total": len(dias),
        "dias_disponibles_total": len(dias) - unavailable,
        "dias_no_disponibles_total": unavailable,
    })


@app.route("/api/citas/medico/<int:medico_id>/disponibilidad", methods=["GET"])
def slot_availability(medico_id):
    """GET /citas/medico/1/disponibilidad?fecha=2025-01-15"""
    if find_doctor(medico_id) is None:
        return error("Médico no encontrado", 404)
    day = parse_day(request.args.get("fecha", ""))
    if day is None:
        return error("El parámetro fecha es requerido (YYYY-MM-DD)", 400)
    if day < date.today():
        return error("La fecha debe ser hoy o posterior", 400)

    slots, reason = generate_time_slots(medico_id, day)
    return ok({"disponible": bool(slots), "razon": reason, "horarios": slots})


# -------------------------------------------------------- appointments

@app.route("/api/citas", methods=["POST"])
@require_auth
def create_cita():
    """POST /citas - Book an appointment for the logged-in patient.

    Expected JSON body:
    {
        "medico_id": 1,
        "fecha": "2025-01-15",
        "hora_inicio": "09:00",
        "hora_fin": "09:30",
        "motivo": "chest pain"
    }
    """
    paciente_id = g.user.get("paciente_id")
    if paciente_id is None:
        return error("Solo los pacientes pueden reservar citas", 403)

    data = request.json or {}
    for field in ("medico_id", "fecha", "hora_inicio", "hora_fin"):
        if not data.get(field):
            return error(f"Falta el campo requerido: {field}", 400)

    medico_id = data["medico_id"]
    if find_doctor(medico_id) is None:
        return error("Médico no encontrado", 404)
    day = parse_day(data["fecha"])
    if day is None:
        return error("Fecha inválida", 400)
    if day < date.today():
        return error("La fecha debe ser hoy o posterior", 400)

    slots, _ = generate_time_slots(medico_id, day)
    slot = next((s for s in slots if s["hora_inicio"] == data["hora_inicio"]), None)
    if slot is None or slot["hora_fin"] != data["hora_fin"]:
        return error("El horario seleccionado ya no está disponible", 409)

    cita = {
        "id": next_id("cita"),
        "paciente_id": paciente_id,
        "medico_id": medico_id,
        "fecha": day.isoformat(),
        "hora_inicio": data["hora_inicio"],
        "hora_fin": data["hora_fin"],
        "estado": "pendiente",
        "motivo": data.get("motivo") or "",
        "comentario_medico": None,
        "fecha_creacion": datetime.now().isoformat(timespec="seconds"),
    }
    appointments.append(cita)
    return ok(appointment_view(cita), status=201, message="Cita creada correctamente")


@app.route("/api/citas/<int:cita_id>", methods=["GET"])
@require_auth
def get_cita(cita_id):
    cita = find_appointment(cita_id)
    if cita is None:
        return error("Cita no encontrada", 404)
    if g.user.get("paciente_id") != cita["paciente_id"] and g.user.get("medico_id") != cita["medico_id"]:
        return error("No autorizado", 403)
    return ok(appointment_view(cita))


@app.route("/api/citas/<int:cita_id>/cancelar", methods=["PUT"])
@require_auth
def cancel_cita(cita_id):
    cita = find_appointment(cita_id)
    if cita is None:
        return error("Cita no encontrada", 404)
    if g.user.get("paciente_id") != cita["paciente_id"]:
        return error("No autorizado", 403)
    if cita["estado"] != "pendiente":
        return error(f"La cita ya está {cita['estado']}", 409)
    cita["estado"] = "cancelada"
    return ok(appointment_view(cita), message="Cita cancelada")


@app.route("/api/pacientes/citas/<int:cita_id>", methods=["PUT"])
@require_auth
def edit_cita(cita_id):
    cita = find_appointment(cita_id)
    if cita is None:
        return error("Cita no encontrada", 404)
    if g.user.get("paciente_id") != cita["paciente_id"]:
        return error("No autorizado", 403)
    if cita["estado"] != "pendiente":
        return error("Solo se pueden editar citas pendientes", 409)
    cita["motivo"] = (request.json or {}).get("motivo", cita["motivo"])
    return ok(appointment_view(cita))


@app.route("/api/medicos/cita/<int:cita_id>", methods=["PUT"])
@require_auth
def doctor_update_cita(cita_id):
    cita = find_appointment(cita_id)
    if cita is None:
        return error("Cita no encontrada", 404)
    if g.user.get("medico_id") != cita["medico_id"]:
        return error("No autorizado", 403)

    data = request.json or {}
    estado = data.get("estado")
    if estado == "aceptada":
        estado = "confirmada"
    if (cita["estado"], estado) not in DOCTOR_TRANSITIONS:
        return error(f"No se puede pasar de {cita['estado']} a {estado}", 409)
    cita["estado"] = estado
    if data.get("comentario_medico"):
        cita["comentario_medico"] = data["comentario_medico"]
    return ok(appointment_view(cita), message="Cita actualizada")


def filter_by_state(rows):
    estado = request.args.get("estado")
    if estado == "aceptada":
        estado = "confirmada"
    return [c for c in rows if not estado or c["estado"] == estado]


@app.route("/api/pacientes/<int:paciente_id>/citas", methods=["GET"])
@require_auth
def patient_citas(paciente_id):
    if g.user.get("paciente_id") != paciente_id:
        return error("No autorizado", 403)
    desde = request.args.get("desde")
    hasta = request.args.get("hasta")
    rows = filter_by_state([c for c in appointments if c["paciente_id"] == paciente_id])
    rows = [
        c for c in rows
        if (not desde or c["fecha"] >= desde) and (not hasta or c["fecha"] <= hasta)
    ]
    rows.sort(key=lambda c: (c["fecha"], c["hora_inicio"]))
    return ok([appointment_view(c) for c in rows], count=len(rows))


@app.route("/api/medicos/<int:medico_id>/citas", methods=["GET"])
@require_auth
def doctor_citas(medico_id):
    if g.user.get("medico_id") != medico_id:
        return error("No autorizado", 403)
    rows = filter_by_state([c for c in appointments if c["medico_id"] == medico_id])
    rows.sort(key=lambda c: (c["fecha"], c["hora_inicio"]))
    return ok([appointment_view(c) for c in rows], count=len(rows))


reset_state()


if __name__ == "__main__":
    setup_structured_logging(config.LOG_LEVEL)
    app.run(
        debug=True,
        port=config.MOCK_API_PORT,
        host="0.0.0.0"
    )
