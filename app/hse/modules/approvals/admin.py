from __future__ import annotations

from datetime import datetime, time

from flask import Blueprint, current_app, jsonify

from app.hse.api import as_date, as_int, as_int_list, current_user, json_body, notifier, require_fields
from app.hse.db import db_session
from app.hse.rbac import require_permission
from app.hse.modules.document_control.service import current_version, document_to_dict, get_document

from .resolvers import default_review_chain, step_specs_from_payload
from .service import (
    add_step_assignees,
    decide,
    get_inbox,
    get_workflow_history,
    submit_for_approval,
    workflow_to_dict,
)

bp = Blueprint("approvals", __name__)


@bp.post("/documents/<int:doc_id>/submit")
@require_permission("approvals.submit")
def workflow_submit(doc_id: int):
    """
    Body: {"version_id"?, "workflow_name"?, "deadline"?, "steps"?: [...]}.
    Without "steps" the default Section Head -> PJO chain is used.
    """
    s = db_session()
    u = current_user()
    data = json_body()

    d = get_document(s, doc_id)
    version_id = as_int(data["version_id"], "version_id") if data.get("version_id") else current_version(s, d).id
    steps = step_specs_from_payload(data["steps"]) if data.get("steps") else default_review_chain()
    deadline = as_date(data.get("deadline"), "deadline")

    wf = submit_for_approval(
        s,
        doc_id,
        version_id,
        steps,
        initiator=u,
        workflow_name=data.get("workflow_name"),
        deadline=datetime.combine(deadline, time(23, 59, 59)) if deadline else None,
        notifier=notifier(),
    )
    s.commit()
    return jsonify({"workflow": workflow_to_dict(wf), "document": document_to_dict(d)}), 201


@bp.post("/assignees/<int:assignee_id>/decide")
@require_permission("approvals.decide")
def assignee_decide(assignee_id: int):
    s = db_session()
    u = current_user()
    data = json_body()
    require_fields(data, "decision")
    outcome = decide(
        s,
        assignee_id,
        data["decision"],
        comments=data.get("comments"),
        actor=u,
        notifier=notifier(),
        attempts=int(current_app.config.get("WORKFLOW_DECISION_RETRIES", 3)),
        backoff_seconds=float(current_app.config.get("WORKFLOW_RETRY_BACKOFF_SECONDS", 0.05)),
    )
    return jsonify({"outcome": outcome.to_dict()})


@bp.post("/steps/<int:step_id>/assignees")
@require_permission("approvals.assign")
def step_add_assignees(step_id: int):
    s = db_session()
    u = current_user()
    data = json_body()
    require_fields(data, "user_ids")
    st = add_step_assignees(s, step_id, as_int_list(data["user_ids"], "user_ids"), user=u, notifier=notifier())
    s.commit()
    return jsonify({"workflow": workflow_to_dict(st.workflow)})


@bp.get("/inbox")
@require_permission("approvals.view")
def inbox():
    s = db_session()
    u = current_user()
    return jsonify({"items": [p.to_dict() for p in get_inbox(s, u.id)]})


@bp.get("/documents/<int:doc_id>/history")
@require_permission("approvals.view")
def workflow_history(doc_id: int):
    s = db_session()
    return jsonify({"workflows": [workflow_to_dict(wf) for wf in get_workflow_history(s, doc_id)]})
