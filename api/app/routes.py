"""Endpoints de l'API : grand livre, balance, états financiers, lettrage, defaults, health."""

from __future__ import annotations

import datetime
import logging

from fastapi import APIRouter, HTTPException, Query, Request
from fastapi.responses import StreamingResponse

from compta_syscohada.config.loader import AppConfig
from compta_syscohada.exporters.excel import export_to_bytes
from compta_syscohada.models import ComptaError, ErrorCode, Exercice, LineRef
from compta_syscohada.pipeline import PipelineOrchestrator
from compta_syscohada.store.base import EntryFilter

from .schemas import LettrageRequest, check_code_lettrage, check_compte, parse_line_ref
from .serializers import (
    serialize_account,
    serialize_account_summary,
    serialize_bilan,
    serialize_compte_resultat,
    serialize_group,
    serialize_history_entry,
    serialize_indicateurs,
    serialize_lettrage_result,
    serialize_line,
    serialize_ledger,
    serialize_point_balance,
    serialize_proposal,
    serialize_statistics,
    serialize_trial_balance,
)

logger = logging.getLogger(__name__)

router = APIRouter()

MAX_SEARCH_RESULTS = 1000
MAX_ACCOUNT_RESULTS = 100
MAX_HISTORY_RESULTS = 500

STATUS_BY_CODE = {
    ErrorCode.NOT_FOUND: 404,
    ErrorCode.VALIDATION_ERROR: 422,
    ErrorCode.CONFLICT: 409,
    ErrorCode.STORE_UNAVAILABLE: 503,
}


def _http_error(e: ComptaError) -> HTTPException:
    """Traduit une erreur métier en réponse HTTP (404 / 422 / 409 / 503)."""
    status = STATUS_BY_CODE.get(e.code, 500)
    if status >= 500:
        logger.error("Erreur %s : %s", e.code.value, e)
    return HTTPException(status_code=status, detail={"code": e.code.value, "message": str(e)})


def _compte(value: str) -> str:
    try:
        return check_compte(value)
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))


def _exercice(request: Request, year: int | None) -> Exercice:
    """Exercice demandé, ou celui de la dernière écriture."""
    config: AppConfig = request.app.state.config
    if year is None:
        entries = request.app.state.store.list_entries()
        if not entries:
            raise HTTPException(
                status_code=404,
                detail={"code": ErrorCode.NOT_FOUND.value, "message": "Aucune écriture chargée"},
            )
        year = entries[-1].date.year
    try:
        return config.exercice(year)
    except ComptaError as e:
        raise _http_error(e)


# --- Grand livre ---


@router.get("/api/grand-livre/comptes")
async def list_comptes(
    request: Request,
    classe_debut: str | None = Query(None, pattern=r"^[1-9]$"),
    classe_fin: str | None = Query(None, pattern=r"^[1-9]$"),
    avec_mouvements: bool = False,
) -> list[dict[str, object]]:
    """Comptes avec leurs totaux et leur solde courant."""
    try:
        summaries = request.app.state.balances.account_summaries(classe_debut, classe_fin, avec_mouvements)
    except ComptaError as e:
        raise _http_error(e)
    return [serialize_account_summary(s) for s in summaries]


@router.get("/api/grand-livre/search")
async def search_lignes(
    request: Request,
    compte_debut: str | None = None,
    compte_fin: str | None = None,
    date_debut: datetime.date | None = None,
    date_fin: datetime.date | None = None,
    journal_code: str | None = Query(None, pattern=r"^[A-Z]{2,3}$"),
    tiers_code: str | None = None,
    inclure_lettres: bool = True,
    limit: int = Query(MAX_SEARCH_RESULTS, ge=1, le=MAX_SEARCH_RESULTS),
) -> dict[str, object]:
    """Recherche avancée de lignes sur plusieurs comptes."""
    try:
        entry_filter = EntryFilter(
            compte_debut=compte_debut,
            compte_fin=compte_fin,
            date_debut=date_debut,
            date_fin=date_fin,
            journal_code=journal_code,
            tiers_code=tiers_code,
        )
        lines = request.app.state.ledger.search(entry_filter, include_reconciled=inclure_lettres, limit=limit)
    except ComptaError as e:
        raise _http_error(e)
    return {"total": len(lines), "lignes": [serialize_line(line) for line in lines]}


@router.get("/api/grand-livre/search-comptes")
async def search_comptes(
    request: Request,
    q: str = Query(..., min_length=1),
    limit: int = Query(20, ge=1, le=MAX_ACCOUNT_RESULTS),
) -> list[dict[str, object]]:
    """Comptes mouvementés dont le numéro ou le libellé contient ``q``."""
    try:
        accounts = request.app.state.ledger.search_accounts(q, limit)
    except ComptaError as e:
        raise _http_error(e)
    return [serialize_account(a) for a in accounts]


@router.get("/api/grand-livre/{compte}")
async def grand_livre(
    request: Request,
    compte: str,
    date_debut: datetime.date | None = None,
    date_fin: datetime.date | None = None,
    inclure_lettres: bool = True,
) -> dict[str, object]:
    """Grand livre d'un compte avec solde cumulé."""
    compte = _compte(compte)
    try:
        record = request.app.state.ledger.build(
            compte, date_debut=date_debut, date_fin=date_fin, include_reconciled=inclure_lettres
        )
    except ComptaError as e:
        raise _http_error(e)
    return serialize_ledger(record)


@router.get("/api/grand-livre/{compte}/solde")
async def solde_compte(request: Request, compte: str, date: datetime.date) -> dict[str, object]:
    """Solde d'un compte à une date."""
    compte = _compte(compte)
    try:
        balance = request.app.state.balances.balance_as_of(compte, date)
    except ComptaError as e:
        raise _http_error(e)
    return serialize_point_balance(balance)


# --- Balance générale ---


@router.get("/api/balance")
async def balance_generale(
    request: Request,
    compte_debut: str | None = None,
    compte_fin: str | None = None,
    date_arrete: datetime.date | None = None,
    avec_mouvements: bool = False,
) -> dict[str, object]:
    """Balance générale arrêtée à une date."""
    try:
        balance = request.app.state.balances.trial_balance(compte_debut, compte_fin, date_arrete, avec_mouvements)
    except ComptaError as e:
        raise _http_error(e)
    return serialize_trial_balance(balance)


# --- États financiers ---


@router.get("/api/etats-financiers/bilan")
async def bilan(request: Request, exercice: int | None = Query(None, ge=1900, le=2999)) -> dict[str, object]:
    target = _exercice(request, exercice)
    try:
        result = request.app.state.statements.bilan(target)
    except ComptaError as e:
        raise _http_error(e)
    return serialize_bilan(result)


@router.get("/api/etats-financiers/resultat")
async def compte_resultat(
    request: Request, exercice: int | None = Query(None, ge=1900, le=2999)
) -> dict[str, object]:
    target = _exercice(request, exercice)
    try:
        result = request.app.state.statements.compte_resultat(target)
    except ComptaError as e:
        raise _http_error(e)
    return serialize_compte_resultat(result)


@router.get("/api/etats-financiers/indicateurs")
async def indicateurs(request: Request, exercice: int | None = Query(None, ge=1900, le=2999)) -> dict[str, object]:
    target = _exercice(request, exercice)
    try:
        result = request.app.state.statements.indicateurs(target)
    except ComptaError as e:
        raise _http_error(e)
    return serialize_indicateurs(result)


@router.get("/api/export/excel")
async def download_excel(
    request: Request, exercice: int | None = Query(None, ge=1900, le=2999)
) -> StreamingResponse:
    """Balance, grand livre et états de l'exercice en fichier .xlsx."""
    config: AppConfig = request.app.state.config
    target = _exercice(request, exercice)
    try:
        report = PipelineOrchestrator().build_report(request.app.state.store.list_entries(), config, target.year)
    except ComptaError as e:
        raise _http_error(e)

    buffer = export_to_bytes(report, config)
    filename = f"etats-financiers-{target.code}.xlsx"
    return StreamingResponse(
        buffer,
        media_type="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


# --- Lettrage ---


@router.get("/api/lettrage/propositions/{compte}")
async def propositions(request: Request, compte: str, tiers: str | None = None) -> list[dict[str, object]]:
    """Propositions de lettrage exact sur les lignes non lettrées."""
    compte = _compte(compte)
    try:
        proposals = request.app.state.lettrage.propose(compte, tiers)
    except ComptaError as e:
        raise _http_error(e)
    return [serialize_proposal(p) for p in proposals]


@router.get("/api/lettrage/groupes")
async def groupes(request: Request, compte: str | None = None) -> list[dict[str, object]]:
    if compte is not None:
        compte = _compte(compte)
    try:
        groups = request.app.state.lettrage.groups(compte)
    except ComptaError as e:
        raise _http_error(e)
    return [serialize_group(g) for g in groups]


@router.get("/api/lettrage/lignes")
async def lignes_lettrage(
    request: Request,
    compte_debut: str | None = None,
    compte_fin: str | None = None,
    tiers_code: str | None = None,
    date_debut: datetime.date | None = None,
    date_fin: datetime.date | None = None,
    journal_code: str | None = Query(None, pattern=r"^[A-Z]{2,3}$"),
    statut: str | None = Query(None, pattern=r"^(lettre|non_lettre)$"),
) -> dict[str, object]:
    """Lignes à lettrer ou déjà lettrées, sur une plage de comptes."""
    try:
        entry_filter = EntryFilter(
            compte_debut=compte_debut,
            compte_fin=compte_fin,
            date_debut=date_debut,
            date_fin=date_fin,
            journal_code=journal_code,
            tiers_code=tiers_code,
        )
        lines = request.app.state.lettrage.lines(entry_filter, statut)
    except ComptaError as e:
        raise _http_error(e)
    return {"total": len(lines), "lignes": [serialize_line(line) for line in lines]}


@router.get("/api/lettrage/historique")
async def historique(
    request: Request,
    compte: str | None = None,
    limit: int = Query(50, ge=1, le=MAX_HISTORY_RESULTS),
) -> list[dict[str, object]]:
    """Dernières opérations de lettrage et de délettrage, la plus récente en tête."""
    if compte is not None:
        compte = _compte(compte)
    try:
        entries = request.app.state.lettrage.history(compte, limit)
    except ComptaError as e:
        raise _http_error(e)
    return [serialize_history_entry(e) for e in entries]


@router.get("/api/lettrage/statistiques/{compte}")
async def statistiques(request: Request, compte: str) -> dict[str, object]:
    compte = _compte(compte)
    try:
        stats = request.app.state.lettrage.statistics(compte)
    except ComptaError as e:
        raise _http_error(e)
    return serialize_statistics(stats)


@router.post("/api/lettrage", status_code=201)
async def lettrer(request: Request, body: LettrageRequest) -> dict[str, object]:
    """Lettrage manuel d'un ensemble de lignes soldé."""
    try:
        group = request.app.state.lettrage.letter(body.compte, body.refs())
    except ComptaError as e:
        raise _http_error(e)
    return serialize_group(group)


@router.post("/api/lettrage/auto/{compte}")
async def lettrage_auto(request: Request, compte: str) -> dict[str, object]:
    """Applique toutes les propositions ; les conflits sont listés sans interrompre le lot."""
    compte = _compte(compte)
    try:
        result = request.app.state.lettrage.auto_letter(compte)
    except ComptaError as e:
        raise _http_error(e)
    return serialize_lettrage_result(result)


@router.delete("/api/lettrage/{compte}/{code}")
async def delettrer(
    request: Request,
    compte: str,
    code: str,
    ligne: list[str] = Query(default=[]),
) -> dict[str, object]:
    """Délettre tout le groupe, ou les seules lignes ``ligne=<écriture>/<rang>``."""
    compte = _compte(compte)
    try:
        code = check_code_lettrage(code)
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))
    refs: list[LineRef] | None = None
    if ligne:
        try:
            refs = [parse_line_ref(value) for value in ligne]
        except ValueError as e:
            raise HTTPException(status_code=422, detail=str(e))
    try:
        cleared = request.app.state.lettrage.unletter(compte, code, refs)
    except ComptaError as e:
        raise _http_error(e)
    return {
        "compte": compte,
        "code": code,
        "lignes": [{"ecriture_id": r.entry_id, "ligne": r.line_no} for r in cleared],
    }


# --- Configuration ---


@router.get("/api/defaults")
async def defaults(request: Request) -> dict[str, object]:
    """Retourne l'entreprise, les comptes par défaut, les journaux et les classes du plan comptable."""
    config: AppConfig = request.app.state.config
    return {
        "entreprise": config.company_name,
        "devise": config.currency,
        "decimales": config.decimals,
        "comptes_defaut": dict(config.comptes_defaut),
        "journaux": {code: {"libelle": j.label, "type": j.type} for code, j in config.journaux.items()},
        "classes": {digit: {"libelle": c.label, "type": c.type} for digit, c in config.classes.items()},
        "taux_tva": dict(config.taux_tva),
        "exercice": {"start_month": config.fiscal_start_month, "end_month": config.fiscal_end_month},
        "lettrage": {
            "max_subset_size": config.lettrage.max_subset_size,
            "max_candidates": config.lettrage.max_candidates,
            "comptes": list(config.lettrage.comptes),
        },
    }


@router.get("/api/health")
async def health() -> dict[str, str]:
    """Health check."""
    return {"status": "ok"}
