from fastapi import FastAPI, HTTPException, Depends, Header, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from typing import Optional
import hmac
import sentry_sdk
from datetime import datetime, timedelta, date
import uuid
import time
from contextlib import asynccontextmanager

# Import our logging configuration
from .logging_config import (
    setup_logging, log_error, log_api_call,
    AppError, ValidationError, AuthenticationError,
    ExtractionError, DatabaseError, NotFoundError
)

# Import validation utilities
from .validation import (
    sanitize_text, require_field, validate_user_id, validate_weight,
    validate_height, validate_birth_date, validate_body_fat, validate_waist,
    validate_steps_goal, validate_routine_name
)

from .config import Settings, local_today
from .health import HealthChecker, MetricsCollector
from .rate_limiter import RateLimiter, check_rate_limit
from .database import SupabaseStore, build_supabase_client
from .llm import build_anthropic_client, build_langfuse

from .schemas import (
    VoiceLogReq, VoiceLogResp, LogTextReq, LogWorkoutReq,
    UpdateProfileReq, RoutineReq, Routine, UserProfile,
    TodayResp, SummariesResp, EventsResp, DeleteEventResp,
    ProfileResp, TrendsResp, CoachInsightsResp, ExerciseProgressResp
)

from backend.fitness import FitnessExtractor, CoachInsights, apply_entry, remove_entry, process_text_log, ReconcileResult
from backend.fitness.energy import FALLBACK_WEIGHT_KG, age_on, round_half_up, tdee_for_profile
from backend.fitness.ledger import parse_exercise_kcal
from backend.fitness.targets import targets_for
from backend.fitness.workout import exercise_names, exercise_progress, workout_entry
from backend.fitness.coaching import calculate_streaks, generate_achievements, generate_insights

settings = Settings.from_env()

# Initialize logging
logger = setup_logging(settings.log_level)

sentry_sdk.init(dsn=settings.sentry_dsn, traces_sample_rate=0.2)

DEV_USER_ID = "00000000-0000-0000-0000-000000000000"
DEV_TOKENS = ("test-token", "dev-token")

RANGE_DAYS = {"7d": 7, "30d": 30, "90d": 90, "all": 365*10}  # "all" = 10 years

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Build the external clients once; handlers reach them through app.state"""
    try:
        app.state.store = SupabaseStore(build_supabase_client(settings))
    except DatabaseError as e:
        log_error(logger, e, {"endpoint": "lifespan"})
        app.state.store = None

    llm_client = build_anthropic_client(settings)
    tracer = build_langfuse(settings)
    app.state.extractor = FitnessExtractor(llm_client, settings.extractor_model, tracer)
    app.state.coach = CoachInsights(llm_client, settings.coach_model, tracer)
    app.state.health_checker = HealthChecker(app.state.store, llm_client, settings)
    logger.info("[lifespan] clients ready")
    yield
    if tracer:
        tracer.flush()
    app.state.store = None

app = FastAPI(title="Voice Fitness Log API", version="1.0.0", lifespan=lifespan)
app.state.settings = settings
app.state.rate_limiter = RateLimiter()
app.state.metrics = MetricsCollector()

# Add request logging middleware
@app.middleware("http")
async def log_requests(request: Request, call_next):
    start_time = time.time()

    # Generate request ID for tracing
    request_id = str(uuid.uuid4())
    metrics = request.app.state.metrics

    logger.info(
        f"Request started: {request.method} {request.url.path}",
        extra={
            "request_id": request_id,
            "method": request.method,
            "path": request.url.path,
        }
    )

    try:
        response = await call_next(request)

        execution_time = (time.time() - start_time) * 1000

        metrics.increment_requests()
        if response.status_code >= 400:
            metrics.increment_errors()

        log_api_call(
            logger=logger,
            endpoint=f"{request.method} {request.url.path}",
            execution_time=execution_time,
            status_code=response.status_code
        )

        return response

    except Exception as e:
        execution_time = (time.time() - start_time) * 1000

        log_error(logger, e, {
            "request_id": request_id,
            "endpoint": f"{request.method} {request.url.path}",
            "execution_time": execution_time
        })

        raise

# Personal tool called from phone shortcuts and the dashboard: any origin
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=False,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["Authorization", "Content-Type", "Accept"],
)

# Dependencies

def get_settings(request: Request) -> Settings:
    return request.app.state.settings

def find_store(request: Request):
    return getattr(request.app.state, "store", None)

def find_extractor(request: Request):
    return getattr(request.app.state, "extractor", None)

def get_store(store=Depends(find_store)):
    if store is None:
        raise HTTPException(status_code=503, detail="Database not configured")
    return store

def get_extractor(extractor=Depends(find_extractor)):
    if extractor is None:
        raise HTTPException(status_code=503, detail="Extractor not initialized")
    return extractor

def get_coach(request: Request):
    coach = getattr(request.app.state, "coach", None)
    if coach is None:
        raise HTTPException(status_code=503, detail="Coach not initialized")
    return coach

def get_today(settings: Settings = Depends(get_settings)) -> date:
    return local_today(settings)

async def get_current_user(authorization: str = Header(None),
                           settings: Settings = Depends(get_settings),
                           store=Depends(get_store)) -> str:
    """Resolve the bearer token to a user id"""
    if not authorization or not authorization.startswith("Bearer "):
        raise HTTPException(status_code=401, detail="Invalid authorization header")

    token = authorization.split(" ", 1)[1]

    # Allow test tokens ONLY in development environment
    if settings.is_development and token in DEV_TOKENS:
        return DEV_USER_ID

    try:
        return store.authenticate(token)
    except AuthenticationError:
        raise HTTPException(status_code=401, detail="Invalid token")

def http_error(e: AppError, context: dict) -> HTTPException:
    """Log an application error and turn it into an HTTPException"""
    if isinstance(e, ValidationError):
        logger.warning(f"Validation failed: {e.message}", extra=context)
        return HTTPException(status_code=422, detail={"error": e.error_code, "message": e.message, "field": e.field})
    log_error(logger, e, context)
    return HTTPException(status_code=e.status_code, detail={"error": e.error_code, "message": e.message})

def log_response(result: ReconcileResult, message: str) -> VoiceLogResp:
    burned = result.guess.burned_calories
    return VoiceLogResp(
        success=True,
        message=message,
        new_tdee=result.energy.tdee,
        burned_calories=round_half_up(burned) if burned is not None else None,
        calories=result.summary.calories,
        steps=result.summary.steps,
        parsed=result.guess.model_dump(mode="json", exclude_none=True),
        event_id=result.event.id if result.event else None,
        energy=result.energy,
    )

def current_weight(store, user_id: str, day: date) -> Optional[float]:
    summary = store.get_summary(user_id, day)
    if summary and summary.weight is not None:
        return summary.weight
    return store.latest_weight_before(user_id, day)

# Logging

@app.post("/voice-log", response_model=VoiceLogResp)
async def voice_log(req: VoiceLogReq, request: Request,
                    settings: Settings = Depends(get_settings),
                    store=Depends(find_store),
                    extractor=Depends(find_extractor),
                    today: date = Depends(get_today)):
    """Webhook for voice shortcuts: {userId, text, secret?}

    Every outcome, errors included, is a {success, ...} body.
    """
    if settings.voice_secret and not hmac.compare_digest(req.secret or "", settings.voice_secret):
        return JSONResponse(status_code=401, content={"success": False, "error": "Unauthorized"})

    try:
        user_id = validate_user_id(req.user_id)
        text = sanitize_text(require_field(req.text, "text"))
    except ValidationError as e:
        logger.warning(f"Voice log rejected: {e.message}")
        return JSONResponse(status_code=400, content={"success": False, "error": e.message, "field": e.field})

    if store is None or extractor is None:
        logger.error("Voice log received before storage and extraction were configured")
        return JSONResponse(status_code=503, content={"success": False, "error": "Service not configured"})

    try:
        check_rate_limit(request.app.state.rate_limiter, request, user_id, 'log')
    except HTTPException as e:
        return JSONResponse(status_code=e.status_code, headers=e.headers,
                            content={"success": False, "error": e.detail["message"]})
    metrics = request.app.state.metrics

    try:
        result = process_text_log(store, extractor, user_id, text, today, source="voice")
    except ExtractionError as e:
        metrics.extraction_failures += 1
        log_error(logger, e, {"user_id": user_id, "endpoint": "voice-log"})
        return JSONResponse(status_code=502, content={"success": False, "error": e.message})
    except AppError as e:
        log_error(logger, e, {"user_id": user_id, "endpoint": "voice-log"})
        return JSONResponse(status_code=e.status_code, content={"success": False, "error": e.message})

    metrics.entries_logged += 1
    return log_response(result, "Datos guardados correctamente")

@app.post("/log/text", response_model=VoiceLogResp)
async def log_text(req: LogTextReq, request: Request,
                   user_id: str = Depends(get_current_user),
                   store=Depends(get_store),
                   extractor=Depends(get_extractor),
                   today: date = Depends(get_today)):
    check_rate_limit(request.app.state.rate_limiter, request, user_id, 'log')

    try:
        text = sanitize_text(req.text)
        if not text:
            raise ValidationError("Log text cannot be empty", "text")
        result = process_text_log(store, extractor, user_id, text, req.log_date or today, source="text")
    except ExtractionError as e:
        request.app.state.metrics.extraction_failures += 1
        raise http_error(e, {"user_id": user_id})
    except AppError as e:
        raise http_error(e, {"user_id": user_id})

    request.app.state.metrics.entries_logged += 1
    return log_response(result, "Registro procesado")

@app.post("/log/workout", response_model=VoiceLogResp)
async def log_workout(req: LogWorkoutReq, request: Request,
                      user_id: str = Depends(get_current_user),
                      store=Depends(get_store),
                      today: date = Depends(get_today)):
    """Record a finished routine session as exercise calories plus a training label"""
    day = req.log_date or today
    try:
        weight = current_weight(store, user_id, day) or FALLBACK_WEIGHT_KG
        raw_text, guess, extra = workout_entry(req.sets, weight, req.actual_calories)
        result = apply_entry(store, user_id, raw_text, guess, day, source="workout", event_extra=extra)
    except AppError as e:
        raise http_error(e, {"user_id": user_id})

    logger.info(
        f"Workout logged: {guess.burned_calories} kcal",
        extra={"user_id": user_id, "day": day.isoformat()}
    )
    request.app.state.metrics.entries_logged += 1
    return log_response(result, "Entrenamiento guardado")

# History

@app.get("/events", response_model=EventsResp)
async def list_events(day: Optional[date] = Query(None, alias="date"),
                      user_id: str = Depends(get_current_user),
                      store=Depends(get_store),
                      today: date = Depends(get_today)):
    day = day or today
    try:
        return EventsResp(date=day, events=store.list_events(user_id, day))
    except AppError as e:
        raise http_error(e, {"user_id": user_id})

@app.delete("/events/{event_id}", response_model=DeleteEventResp)
async def delete_event(event_id: str, request: Request,
                       user_id: str = Depends(get_current_user),
                       store=Depends(get_store)):
    """Undo one logged entry: reverse its totals, then drop the event"""
    try:
        event = store.get_event(user_id, event_id)
        if event is None:
            raise NotFoundError("log event", event_id)
        summary = remove_entry(store, user_id, event)
    except AppError as e:
        raise http_error(e, {"user_id": user_id, "event_id": event_id})

    request.app.state.metrics.entries_removed += 1
    return DeleteEventResp(summary=summary)

@app.get("/today", response_model=TodayResp)
async def get_today_summary(user_id: str = Depends(get_current_user),
                            store=Depends(get_store),
                            today: date = Depends(get_today)):
    try:
        summary = store.get_summary(user_id, today)
        profile = store.get_profile(user_id) or UserProfile(id=user_id)
        events = store.list_events(user_id, today)
        weight = summary.weight if summary and summary.weight is not None else store.latest_weight_before(user_id, today)
    except AppError as e:
        raise http_error(e, {"user_id": user_id})

    exercise_kcal = parse_exercise_kcal(summary.notes) if summary else 0
    steps = summary.steps if summary else 0
    return TodayResp(
        date=today,
        summary=summary,
        energy=tdee_for_profile(weight, steps, exercise_kcal, profile, today),
        exercise_kcal=exercise_kcal,
        events_count=len(events),
    )

@app.get("/summaries", response_model=SummariesResp)
async def list_summaries(range: str = "30d",
                         user_id: str = Depends(get_current_user),
                         store=Depends(get_store),
                         today: date = Depends(get_today)):
    days = RANGE_DAYS.get(range)
    if days is None:
        raise HTTPException(status_code=400, detail=f"Invalid range; use one of {', '.join(RANGE_DAYS)}")
    try:
        summaries = store.list_summaries(user_id, today - timedelta(days=days), today)
    except AppError as e:
        raise http_error(e, {"user_id": user_id})
    return SummariesResp(range=range, summaries=summaries)

@app.get("/exercises/progress", response_model=ExerciseProgressResp)
async def get_exercise_progress(exercise: Optional[str] = None,
                                range: str = "90d",
                                user_id: str = Depends(get_current_user),
                                store=Depends(get_store),
                                today: date = Depends(get_today)):
    """Per-exercise max weight, estimated 1RM and volume from logged workouts"""
    days = RANGE_DAYS.get(range)
    if days is None:
        raise HTTPException(status_code=400, detail=f"Invalid range; use one of {', '.join(RANGE_DAYS)}")
    try:
        events = store.list_workout_events(user_id, today - timedelta(days=days), today)
    except AppError as e:
        raise http_error(e, {"user_id": user_id})
    return ExerciseProgressResp(
        range=range,
        exercise=exercise,
        exercises=exercise_names(events),
        points=exercise_progress(events, exercise),
    )

# Profile

@app.get("/profile", response_model=ProfileResp)
async def get_profile(user_id: str = Depends(get_current_user),
                      store=Depends(get_store),
                      today: date = Depends(get_today)):
    try:
        profile = store.get_profile(user_id) or UserProfile(id=user_id)
    except AppError as e:
        raise http_error(e, {"user_id": user_id})
    return ProfileResp(profile=profile, targets=targets_for(profile), age=age_on(profile.birth_date, today))

@app.put("/profile", response_model=ProfileResp)
async def update_profile(req: UpdateProfileReq,
                         user_id: str = Depends(get_current_user),
                         store=Depends(get_store),
                         today: date = Depends(get_today)):
    try:
        current = store.get_profile(user_id) or UserProfile(id=user_id)
        updates = req.model_dump(exclude_unset=True)

        if updates.get("full_name") is not None:
            updates["full_name"] = sanitize_text(updates["full_name"], 200)
        if updates.get("height") is not None:
            updates["height"] = validate_height(updates["height"])
        if updates.get("birth_date") is not None:
            updates["birth_date"] = validate_birth_date(updates["birth_date"], today)
        if updates.get("target_weight") is not None:
            updates["target_weight"] = validate_weight(updates["target_weight"])
        if updates.get("target_waist") is not None:
            updates["target_waist"] = validate_waist(updates["target_waist"])
        if updates.get("target_body_fat") is not None:
            updates["target_body_fat"] = validate_body_fat(updates["target_body_fat"])
        if updates.get("target_steps") is not None:
            updates["target_steps"] = validate_steps_goal(updates["target_steps"])

        try:
            profile = UserProfile.model_validate({**current.model_dump(), **updates, "id": user_id})
        except ValueError as e:
            raise ValidationError(f"Invalid profile: {e}", "profile")

        store.upsert_profile(profile)
    except AppError as e:
        raise http_error(e, {"user_id": user_id})

    logger.info("Profile updated", extra={"user_id": user_id, "fields": sorted(updates)})
    return ProfileResp(profile=profile, targets=targets_for(profile), age=age_on(profile.birth_date, today))

# Routines

@app.get("/routines")
async def list_routines(user_id: str = Depends(get_current_user), store=Depends(get_store)):
    try:
        return {"routines": [r.model_dump(mode="json") for r in store.list_routines(user_id)]}
    except AppError as e:
        raise http_error(e, {"user_id": user_id})

@app.post("/routines", response_model=Routine)
async def save_routine(req: RoutineReq, user_id: str = Depends(get_current_user), store=Depends(get_store)):
    try:
        routine = Routine(user_id=user_id, name=validate_routine_name(req.name), exercises=req.exercises)
        return store.save_routine(routine)
    except AppError as e:
        raise http_error(e, {"user_id": user_id})

@app.delete("/routines/{routine_id}")
async def delete_routine(routine_id: str, user_id: str = Depends(get_current_user), store=Depends(get_store)):
    try:
        store.delete_routine(user_id, routine_id)
    except AppError as e:
        raise http_error(e, {"user_id": user_id})
    return {"ok": True}

# Progress & coaching

@app.get("/trends", response_model=TrendsResp)
async def get_trends(range: str = "30d",
                     user_id: str = Depends(get_current_user),
                     store=Depends(get_store),
                     today: date = Depends(get_today)):
    """Streaks, achievements and rule-based insights over a date range"""
    days = RANGE_DAYS.get(range, 30)
    try:
        summaries = store.list_summaries(user_id, today - timedelta(days=days), today)
        profile = store.get_profile(user_id) or UserProfile(id=user_id)
    except AppError as e:
        raise http_error(e, {"user_id": user_id})

    step_goal = targets_for(profile).steps
    streaks = calculate_streaks(summaries, today, step_goal)
    return TrendsResp(
        range=range,
        current_streaks=streaks,
        achievements=generate_achievements(summaries, streaks, today, step_goal),
        insights=generate_insights(summaries),
    )

@app.post("/coach/insights", response_model=CoachInsightsResp)
async def coach_insights(request: Request,
                         user_id: str = Depends(get_current_user),
                         store=Depends(get_store),
                         coach=Depends(get_coach),
                         today: date = Depends(get_today)):
    check_rate_limit(request.app.state.rate_limiter, request, user_id, 'coach')
    try:
        summaries = store.list_summaries(user_id, today - timedelta(days=CoachInsights.MAX_DAYS), today)
    except AppError as e:
        raise http_error(e, {"user_id": user_id})

    insights, source = coach.generate(summaries)
    return CoachInsightsResp(insights=insights, source=source)

# Health

@app.get("/health")
async def health(request: Request):
    store = getattr(request.app.state, "store", None)
    ok = store is not None and store.ping()
    body = {
        "status": "healthy" if ok else "unhealthy",
        "database": "connected" if ok else "disconnected",
        "timestamp": datetime.now().isoformat()
    }
    return JSONResponse(status_code=200 if ok else 503, content=body)

@app.get("/health/quick")
async def health_quick(request: Request):
    """Quick health check for load balancer"""
    return {
        "status": "healthy",
        "timestamp": datetime.now().isoformat(),
        "uptime": request.app.state.metrics.get_metrics()["uptime_human"]
    }

@app.get("/health/full")
async def health_full(request: Request):
    checker = getattr(request.app.state, "health_checker", None)
    if checker is None:
        raise HTTPException(status_code=503, detail="Health checker not initialized")
    return await checker.run_all_checks()

@app.get("/metrics")
async def metrics(request: Request):
    """Application metrics endpoint"""
    return request.app.state.metrics.get_metrics()
