"""
Contractor Compliance Decision Engine
Decision Blueprint.

Endpoints:
    RECOMMENDATIONS  /api/v1/decision/recommendations          POST
                     /api/v1/decision/recommendations/cache    GET, DELETE

    ANALYSIS         /api/v1/decision/analysis                 POST

    ACTIONS          /api/v1/decision/actions                  GET, POST
                     /api/v1/decision/actions/<id>             GET
                     /api/v1/decision/actions/<id>/execute     POST
                     /api/v1/decision/actions/<id>/cancel      POST
                     /api/v1/decision/actions/<id>/pause       POST
                     /api/v1/decision/actions/<id>/resume      POST
                     /api/v1/decision/actions/batch            POST

    FEEDBACK         /api/v1/decision/actions/<id>/feedback    GET, POST
                     /api/v1/decision/actions/<id>/history     GET
                     /api/v1/decision/analytics                GET
                     /api/v1/decision/tracking/cleanup         POST

    PROVIDER CONFIG  /api/v1/decision/config                   GET, POST
                     /api/v1/decision/config/test              POST
"""

import logging

from flask import Blueprint, current_app, jsonify, request

from compliance_engine.ai.assistants import IssueAnalyst, RecommendationAdvisor
from compliance_engine.ai.cache import RecommendationCache, fingerprint
from compliance_engine.ai.feedback import ActionTracker, FeedbackService, LearningDataSink
from compliance_engine.ai.gateway import AIConfig, AIConfigRepository, ProviderGateway
from compliance_engine.ai.orchestrator import DecisionOrchestrator
from compliance_engine.ai.prompt_registry import PromptBuilder
from compliance_engine.blueprints import paginate_list
from compliance_engine.core.exceptions import NotFoundError, ValidationError
from compliance_engine.integrations.workflow_gateway import IntegrationSettings, WorkflowGateway
from compliance_engine.models.action import ActionFeedback, BatchExecutionRequest
from compliance_engine.models.issues import Recommendation, RecommendationRequest
from compliance_engine.services.action_executor import ActionExecutor
from compliance_engine.services.action_store import ActionStore
from compliance_engine.services.batch_executor import BatchExecutor
from compliance_engine.services.kv_store import create_kv_store
from compliance_engine.utils.errors import E, api_error
from compliance_engine.utils.helpers import parse_datetime

logger = logging.getLogger(__name__)

decision_bp = Blueprint("decision", __name__, url_prefix="/api/v1/decision")

# ── Rate limiting ─────────────────────────────────────────────────────────
from compliance_engine import limiter  # noqa: E402

_ai_generate_limit = limiter.shared_limit("30/minute", scope="ai_generate")


# ── Lazy singletons stored on Flask app (test-isolation safe) ───────────────

def get_store():
    if not hasattr(current_app, "_kv_store"):
        current_app._kv_store = create_kv_store(current_app.config.get("KV_STORE_BACKEND", "sql"))
    return current_app._kv_store


def _get_gateway():
    if not hasattr(current_app, "_provider_gateway"):
        current_app._provider_gateway = ProviderGateway(
            timeout=current_app.config.get("AI_PROVIDER_TIMEOUT", 30.0),
            max_retries=current_app.config.get("AI_PROVIDER_MAX_RETRIES", 2),
        )
    return current_app._provider_gateway


def _get_prompt_builder():
    if not hasattr(current_app, "_prompt_builder"):
        current_app._prompt_builder = PromptBuilder()
    return current_app._prompt_builder


def _get_cache():
    if not hasattr(current_app, "_recommendation_cache"):
        current_app._recommendation_cache = RecommendationCache(
            get_store(), ttl_seconds=current_app.config.get("AI_RECOMMENDATION_CACHE_TTL", 3600),
        )
    return current_app._recommendation_cache


def _get_advisor():
    if not hasattr(current_app, "_recommendation_advisor"):
        current_app._recommendation_advisor = RecommendationAdvisor(
            gateway=_get_gateway(),
            prompt_builder=_get_prompt_builder(),
            store=get_store(),
            cache=_get_cache(),
        )
    return current_app._recommendation_advisor


def _get_analyst():
    if not hasattr(current_app, "_issue_analyst"):
        current_app._issue_analyst = IssueAnalyst(
            gateway=_get_gateway(),
            prompt_builder=_get_prompt_builder(),
            store=get_store(),
        )
    return current_app._issue_analyst


def _get_action_store():
    if not hasattr(current_app, "_action_store"):
        current_app._action_store = ActionStore(get_store())
    return current_app._action_store


def _get_tracker():
    if not hasattr(current_app, "_action_tracker"):
        current_app._action_tracker = ActionTracker(get_store(), _get_action_store())
    return current_app._action_tracker


def _get_executor():
    if not hasattr(current_app, "_action_executor"):
        settings = IntegrationSettings.from_config(current_app.config)
        current_app._action_executor = ActionExecutor(
            _get_action_store(),
            workflow=WorkflowGateway(settings),
            tracker=_get_tracker(),
        )
    return current_app._action_executor


def _get_batch_executor():
    if not hasattr(current_app, "_batch_executor"):
        current_app._batch_executor = BatchExecutor(_get_action_store(), _get_executor())
    return current_app._batch_executor


def _get_orchestrator():
    if not hasattr(current_app, "_decision_orchestrator"):
        current_app._decision_orchestrator = DecisionOrchestrator(_get_action_store())
    return current_app._decision_orchestrator


def _get_feedback_service():
    if not hasattr(current_app, "_feedback_service"):
        current_app._feedback_service = FeedbackService(
            _get_action_store(),
            _get_tracker(),
            sink=LearningDataSink(get_store(), _get_action_store()),
        )
    return current_app._feedback_service


# ── Request parsing ─────────────────────────────────────────────────────────

def _parse(factory, data):
    """Build a domain object from a JSON body; returns (obj, error_response)."""
    try:
        return factory(data), None
    except ValidationError as exc:
        return None, api_error(E.VALIDATION_RULE, str(exc), details=exc.details)
    except KeyError as exc:
        return None, api_error(E.VALIDATION_REQUIRED, f"Missing field: {exc.args[0]}")
    except (TypeError, ValueError) as exc:
        return None, api_error(E.VALIDATION_INVALID, f"Invalid payload: {exc}")


def _action_or_404(action_id):
    action = _get_action_store().get(action_id)
    if action is None:
        return None, api_error(E.NOT_FOUND, "Action not found", details={"action_id": action_id})
    return action, None


# ══════════════════════════════════════════════════════════════════════════════
# RECOMMENDATIONS
# ══════════════════════════════════════════════════════════════════════════════

@decision_bp.route("/recommendations", methods=["POST"])
@_ai_generate_limit
def get_recommendations():
    """Ranked recommendations for one contractor's critical issues."""
    data = request.get_json(silent=True) or {}
    if not data.get("contractor_id"):
        return api_error(E.VALIDATION_REQUIRED, "contractor_id is required")

    rec_request, err = _parse(RecommendationRequest.from_dict, data)
    if err:
        return err

    recommendations = _get_advisor().get_recommendations(rec_request)
    return jsonify({
        "contractor_id": rec_request.contractor_id,
        "fingerprint": fingerprint(rec_request),
        "recommendations": [r.to_dict() for r in recommendations],
        "count": len(recommendations),
    })


@decision_bp.route("/recommendations/cache", methods=["GET"])
def cache_stats():
    return jsonify(_get_cache().get_stats())


@decision_bp.route("/recommendations/cache", methods=["DELETE"])
def clear_cache():
    removed = _get_cache().clear()
    logger.info("Recommendation cache cleared: %d entries", removed)
    return jsonify({"removed": removed})


# ══════════════════════════════════════════════════════════════════════════════
# ANALYSIS
# ══════════════════════════════════════════════════════════════════════════════

@decision_bp.route("/analysis", methods=["POST"])
@_ai_generate_limit
def run_analysis():
    """Root cause, patterns, impact and resources for one request."""
    data = request.get_json(silent=True) or {}
    rec_request, err = _parse(RecommendationRequest.from_dict, data)
    if err:
        return err

    bundle = _get_analyst().analyze(
        rec_request,
        historical_data=data.get("historical_data") or [],
        available_resources=data.get("available_resources") or [],
    )
    return jsonify(bundle.to_dict())


# ══════════════════════════════════════════════════════════════════════════════
# ACTIONS
# ══════════════════════════════════════════════════════════════════════════════

@decision_bp.route("/actions", methods=["POST"])
def create_action():
    """
    Promote a recommendation to a tracked action.

    Body:
        recommendation: Recommendation dict
        request: RecommendationRequest dict it was generated for
        action_type, assignee, historical_data, available_resources: optional
    """
    data = request.get_json(silent=True) or {}
    if not data.get("recommendation") or not data.get("request"):
        return api_error(E.VALIDATION_REQUIRED, "recommendation and request are required")

    recommendation, err = _parse(Recommendation.from_dict, data["recommendation"])
    if err:
        return err
    rec_request, err = _parse(RecommendationRequest.from_dict, data["request"])
    if err:
        return err

    bundle = _get_analyst().analyze(
        rec_request,
        historical_data=data.get("historical_data") or [],
        available_resources=data.get("available_resources") or [],
    )
    try:
        action = _get_orchestrator().promote(
            recommendation, rec_request, bundle,
            action_type=data.get("action_type"),
            assignee=data.get("assignee"),
        )
    except ValidationError as exc:
        return api_error(E.VALIDATION_RULE, str(exc), details=exc.details)
    return jsonify(action.to_dict()), 201


@decision_bp.route("/actions", methods=["GET"])
def list_actions():
    actions = _get_action_store().list_actions(
        status=request.args.get("status"),
        action_type=request.args.get("type"),
    )
    page, total = paginate_list(actions)
    return jsonify({"items": [a.to_dict() for a in page], "total": total})


@decision_bp.route("/actions/<action_id>", methods=["GET"])
def get_action(action_id):
    action, err = _action_or_404(action_id)
    if err:
        return err
    return jsonify(action.to_dict())


@decision_bp.route("/actions/<action_id>/execute", methods=["POST"])
def execute_action(action_id):
    action, err = _action_or_404(action_id)
    if err:
        return err
    result = _get_executor().execute_action(action)
    return jsonify(result.to_dict())


def _transition(action_id, name, apply):
    action, err = _action_or_404(action_id)
    if err:
        return err
    if not apply():
        return api_error(
            E.CONFLICT_STATE,
            f"Cannot {name} action in status '{action.status.value}'"
            + (" (paused)" if action.is_paused else ""),
        )
    return jsonify(_get_action_store().get(action_id).to_dict())


@decision_bp.route("/actions/<action_id>/cancel", methods=["POST"])
def cancel_action(action_id):
    reason = (request.get_json(silent=True) or {}).get("reason", "")
    return _transition(action_id, "cancel", lambda: _get_action_store().cancel(action_id, reason))


@decision_bp.route("/actions/<action_id>/pause", methods=["POST"])
def pause_action(action_id):
    reason = (request.get_json(silent=True) or {}).get("reason", "")
    return _transition(action_id, "pause", lambda: _get_action_store().pause(action_id, reason))


@decision_bp.route("/actions/<action_id>/resume", methods=["POST"])
def resume_action(action_id):
    return _transition(action_id, "resume", lambda: _get_action_store().resume(action_id))


@decision_bp.route("/actions/batch", methods=["POST"])
def execute_batch():
    """
    Body: {"action_ids": [...], "execution_mode": "sequential"|"parallel",
           "failure_mode": "stop_on_first"|"continue_on_error"}
    """
    data = request.get_json(silent=True) or {}
    if not data.get("action_ids"):
        return api_error(E.VALIDATION_REQUIRED, "action_ids is required")

    batch_request, err = _parse(BatchExecutionRequest.from_dict, data)
    if err:
        return err
    result = _get_batch_executor().execute_batch(batch_request)
    return jsonify(result.to_dict())


# ══════════════════════════════════════════════════════════════════════════════
# FEEDBACK & ANALYTICS
# ══════════════════════════════════════════════════════════════════════════════

@decision_bp.route("/actions/<action_id>/feedback", methods=["POST"])
def submit_feedback(action_id):
    data = request.get_json(silent=True) or {}
    feedback, err = _parse(ActionFeedback.from_dict, {**data, "action_id": action_id})
    if err:
        return err
    if not _get_feedback_service().submit_feedback(action_id, feedback):
        return api_error(E.NOT_FOUND, "Action not found", details={"action_id": action_id})
    return jsonify(feedback.to_dict()), 201


@decision_bp.route("/actions/<action_id>/feedback", methods=["GET"])
def get_feedback(action_id):
    items = _get_tracker().get_action_feedback(action_id)
    return jsonify({"items": [f.to_dict() for f in items], "total": len(items)})


@decision_bp.route("/actions/<action_id>/history", methods=["GET"])
def get_history(action_id):
    items = _get_tracker().get_action_history(action_id)
    return jsonify({"items": [r.to_dict() for r in items], "total": len(items)})


@decision_bp.route("/analytics", methods=["GET"])
def get_analytics():
    start = parse_datetime(request.args.get("start"))
    end = parse_datetime(request.args.get("end"))
    if request.args.get("start") and start is None:
        return api_error(E.VALIDATION_INVALID, "start must be an ISO-8601 datetime")
    if request.args.get("end") and end is None:
        return api_error(E.VALIDATION_INVALID, "end must be an ISO-8601 datetime")
    return jsonify(_get_tracker().calculate_analytics(start, end).to_dict())


@decision_bp.route("/tracking/cleanup", methods=["POST"])
def cleanup_tracking():
    """Drop execution history and feedback older than the retention window."""
    data = request.get_json(silent=True) or {}
    days = data.get("days", current_app.config.get("AI_DATA_RETENTION_DAYS", 90))
    if not isinstance(days, int) or isinstance(days, bool) or days < 0:
        return api_error(E.VALIDATION_INVALID, "days must be a non-negative integer")
    removed = _get_tracker().cleanup_old_data(days)
    return jsonify({"removed": removed, "days": days})


# ══════════════════════════════════════════════════════════════════════════════
# PROVIDER CONFIG
# ══════════════════════════════════════════════════════════════════════════════

@decision_bp.route("/config", methods=["GET"])
def list_configs():
    configs = AIConfigRepository(get_store()).list_configs()
    return jsonify({"items": [c.to_dict() for c in configs], "total": len(configs)})


@decision_bp.route("/config", methods=["POST"])
def save_config():
    data = request.get_json(silent=True) or {}
    if not data.get("provider"):
        return api_error(E.VALIDATION_REQUIRED, "provider is required")
    config, err = _parse(AIConfig.from_dict, data)
    if err:
        return err
    AIConfigRepository(get_store()).save(config)
    _get_cache().clear()
    return jsonify(config.to_dict()), 201


@decision_bp.route("/config/test", methods=["POST"])
@_ai_generate_limit
def test_config():
    config_id = (request.get_json(silent=True) or {}).get("config_id")
    try:
        result = _get_advisor().test_connection(config_id)
    except NotFoundError as exc:
        return api_error(E.NOT_FOUND, str(exc))
    return jsonify(result)
