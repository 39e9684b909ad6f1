from __future__ import annotations

import logging
from typing import Any, List

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import JSONResponse, Response
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from collate.data.people_seed import COUNTRIES, LAST_NAMES, STATUSES
from collate.db.session import get_db
from collate.models.person import Person
from collate.schemas.collate import BodyItem, FieldKind, FieldSpec, ListingView, QueryState, make_options
from collate.services.collate import Collate
from collate.services.collate_export import ExportError

_LOG = logging.getLogger("app.collate")

router = APIRouter()

NAME = FieldSpec(field="name", text="Name")
EMAIL = FieldSpec(field="email", text="Email")
SURNAME = FieldSpec(field="surname", text="Surname", kind=FieldKind.SELECT, options=make_options(LAST_NAMES))
ACTIVE = FieldSpec(field="active", text="Active", kind=FieldKind.BOOL)
LAST_LOGIN = FieldSpec(field="last_login", text="Has logged in", kind=FieldKind.NOT_ZERO_DATE)
NEVER_LOGGED_IN = FieldSpec(field="last_login", text="Never logged in", kind=FieldKind.ZERO_DATE)
CREATED_AT = FieldSpec(field="created_at", text="Created between", kind=FieldKind.DATES)
STATUS = FieldSpec(field="status", text="Status", kind=FieldKind.SELECT, options=make_options(STATUSES))
COUNTRY = FieldSpec(field="country", text="Country", kind=FieldKind.SELECT, options=make_options(COUNTRIES))


def _person_row(person: Person, index: int) -> dict[str, Any]:
    return {
        "id": person.id,
        "name": person.name,
        "surname": person.surname,
        "email": person.email,
        "country": person.country,
        "status": person.status,
        "active": person.active,
        "created_at": person.created_at.isoformat() if person.created_at else None,
        "last_login": person.last_login.isoformat() if person.last_login else None,
    }


PEOPLE = Collate(
    Person,
    QueryState(limit=8, order="surname asc"),
    search=[SURNAME, NAME, EMAIL, COUNTRY, STATUS],
    sort=[SURNAME, EMAIL, LAST_LOGIN],
    filters=[ACTIVE, LAST_LOGIN, NEVER_LOGGED_IN, CREATED_AT],
    excel=[SURNAME, NAME, EMAIL, COUNTRY, STATUS, ACTIVE, CREATED_AT, LAST_LOGIN],
    on_row=_person_row,
)


def _field_payload(spec: FieldSpec) -> dict[str, Any]:
    return {
        "field": spec.column,
        "text": spec.label,
        "kind": spec.kind.value,
        "condition": spec.condition,
        "options": [option.model_dump() for option in spec.options],
    }


def listing_payload(listing: Collate, view: ListingView) -> dict[str, Any]:
    result = view.result
    return {
        "total": result.total,
        "filtered": result.filtered,
        "shown": result.shown,
        "has_more": result.has_more,
        "can_reset": view.can_reset,
        "summary": view.summary,
        "empty_title": view.empty_title,
        "rows": listing.rows(result),
        "query": result.query.model_dump(mode="json"),
        "state": view.state,
        "sort_controls": [
            {"field": c.field, "text": c.label, "direction": c.direction, "next_order": c.next_order}
            for c in view.sort_controls
        ],
        "filter_fields": [_field_payload(spec) for spec in listing.filter_fields],
    }


def _run(action: str, fn, *args) -> dict[str, Any]:
    try:
        view = fn(*args)
    except SQLAlchemyError:
        _LOG.exception("collate %s failed", action)
        raise HTTPException(status_code=500, detail="Failed to load listing")
    return listing_payload(PEOPLE, view)


@router.get("")
def people_listing(db: Session = Depends(get_db)):
    return _run("render", PEOPLE.render, db)


@router.post("/search")
def people_search(items: List[BodyItem], db: Session = Depends(get_db)):
    return _run("search", PEOPLE.on_search, db, items)


@router.post("/sort")
def people_sort(items: List[BodyItem], db: Session = Depends(get_db)):
    return _run("sort", PEOPLE.on_sort, db, items)


@router.post("/resize")
def people_resize(items: List[BodyItem], db: Session = Depends(get_db)):
    return _run("resize", PEOPLE.on_resize, db, items)


@router.post("/reset")
def people_reset(db: Session = Depends(get_db)):
    return _run("reset", PEOPLE.on_reset, db)


@router.post("/export")
def people_export(items: List[BodyItem], db: Session = Depends(get_db)):
    try:
        export = PEOPLE.on_export(db, items)
    except (ExportError, SQLAlchemyError):
        _LOG.exception("collate export failed")
        return JSONResponse({"detail": "Error generating Excel file"}, status_code=500)
    headers = {"Content-Disposition": f'attachment; filename="{export.filename}"'}
    return Response(content=export.content, media_type=export.media_type, headers=headers)
