"""Moteur de lettrage : rapprochement exact des lignes débit/crédit d'un compte de tiers.

Politique de rapprochement, dans l'ordre :

1. paire exacte : un débit et un crédit de même montant ;
2. plusieurs pour un : une ligne contre un sous-ensemble de lignes de sens
   opposé (2 à ``max_subset_size`` lignes) dont la somme lui est égale ;
3. rien d'autre : aucune correspondance approchée.

Les candidats sont regroupés par code tiers. À validité égale, la plus
petite combinaison gagne, puis la plus ancienne (ordre chronologique).
"""

from __future__ import annotations

import datetime
import logging
import re
import threading
from collections import defaultdict
from collections.abc import Iterable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field, replace
from decimal import ROUND_HALF_UP, Decimal

from compta_syscohada.config.loader import AppConfig
from compta_syscohada.engine.ledger import LedgerBuilder, group_by_lettrage
from compta_syscohada.models import (
    ConflictError,
    LettrageGroup,
    LineRef,
    NotFoundError,
    PostedLine,
    ValidationError,
)
from compta_syscohada.store.base import EntryFilter, LedgerStore

logger = logging.getLogger(__name__)

LETTRAGE_CODE_PATTERN = re.compile(r"^[A-Z]+$")

KIND_EXACT = "exact"
KIND_MULTIPLE = "multiple"

STATUT_LETTRE = "lettre"
STATUT_NON_LETTRE = "non_lettre"

ACTION_LETTRAGE = "lettrage"
ACTION_DELETTRAGE = "delettrage"


def code_to_index(code: str) -> int:
    """Rang d'un code de lettrage : A=1, Z=26, AA=27…"""
    index = 0
    for char in code:
        index = index * 26 + (ord(char) - ord("A") + 1)
    return index


def index_to_code(index: int) -> str:
    """Code de lettrage de rang ``index`` (numération bijective en base 26)."""
    if index < 1:
        raise ValueError(f"Rang de lettrage invalide : {index}")
    chars: list[str] = []
    while index > 0:
        index, rest = divmod(index - 1, 26)
        chars.append(chr(ord("A") + rest))
    return "".join(reversed(chars))


def code_after(existing: Iterable[str]) -> str:
    """Code suivant le plus grand code alphabétique existant (``A`` si aucun).

    Examples:
        >>> code_after([])
        'A'
        >>> code_after(["A", "Z"])
        'AA'
        >>> code_after(["AZ", "B"])
        'BA'
    """
    indexes = [code_to_index(code) for code in existing if LETTRAGE_CODE_PATTERN.match(code)]
    return index_to_code(max(indexes, default=0) + 1)


@dataclass(frozen=True)
class LettrageProposal:
    """Groupe de lignes qui se soldent exactement, proposé au lettrage."""

    account_number: str
    tiers_code: str | None
    kind: str
    lines: tuple[PostedLine, ...]

    @property
    def refs(self) -> tuple[LineRef, ...]:
        return tuple(line.ref for line in self.lines)

    @property
    def montant(self) -> int:
        return sum(line.debit for line in self.lines)


@dataclass
class LettrageResult:
    """Bilan d'un lettrage automatique : groupes posés et propositions écartées."""

    account_number: str
    groups: list[LettrageGroup] = field(default_factory=list)
    conflicts: list[tuple[LettrageProposal, str]] = field(default_factory=list)


@dataclass(frozen=True)
class LettrageStatistics:
    """Avancement du lettrage sur un compte."""

    account_number: str
    nb_lignes: int
    nb_lettrees: int
    nb_non_lettrees: int
    nb_groupes: int
    montant_lettre: int
    montant_non_lettre: int
    taux_lettrage: float


@dataclass(frozen=True)
class LettrageHistoryEntry:
    """Trace d'un lettrage ou d'un délettrage ; ``montant`` est le total débit des lignes."""

    id: int
    code: str
    action: str
    account_number: str
    refs: tuple[LineRef, ...]
    montant: int
    created_at: datetime.datetime


def _find_subset(target: int, candidates: list[PostedLine], max_size: int) -> tuple[int, ...] | None:
    """Plus petit sous-ensemble (2 à ``max_size`` lignes) dont la somme vaut ``target``.

    Approfondissement itératif sur la taille, puis parcours en profondeur
    dans l'ordre chronologique : le premier sous-ensemble trouvé est le plus
    petit, puis le plus ancien. Une branche est coupée dès que la somme
    partielle dépasse la cible ou ne peut plus l'atteindre.
    """
    amounts = [abs(line.amount) for line in candidates]
    n = len(amounts)
    suffix_max = [0] * (n + 1)
    for i in range(n - 1, -1, -1):
        suffix_max[i] = max(amounts[i], suffix_max[i + 1])

    def search(start: int, size: int, partial: int, chosen: list[int]) -> tuple[int, ...] | None:
        if len(chosen) == size:
            return tuple(chosen) if partial == target else None
        remaining = size - len(chosen)
        for i in range(start, n - remaining + 1):
            total = partial + amounts[i]
            if total > target:
                continue
            if total + (remaining - 1) * suffix_max[i + 1] < target:
                continue
            chosen.append(i)
            found = search(i + 1, size, total, chosen)
            chosen.pop()
            if found is not None:
                return found
        return None

    for size in range(2, min(max_size, n) + 1):
        found = search(0, size, 0, [])
        if found is not None:
            return found
    return None


class LettrageEngine:
    """Propose, pose et retire les codes de lettrage d'un compte.

    Chaque mutation réserve d'abord son ensemble exact de lignes et son
    code sous verrou ; une réservation en cours qui chevauche fait échouer
    la suivante en ``ConflictError``. Les lectures ne prennent pas le verrou.
    """

    def __init__(self, store: LedgerStore, config: AppConfig) -> None:
        self._store = store
        self._config = config
        self._ledger = LedgerBuilder(store, config)
        self._lock = threading.Lock()
        self._in_flight: set[LineRef] = set()
        self._reserved_codes: set[tuple[str, str]] = set()
        self._history: list[LettrageHistoryEntry] = []

    # --- Lecture ---

    def _require_account(self, account_number: str) -> None:
        if self._store.get_account(account_number) is None:
            raise NotFoundError(f"Compte {account_number} introuvable")

    def next_code(self, account_number: str) -> str:
        """Prochain code libre sur le compte (A…Z, AA, AB…)."""
        with self._lock:
            return self._next_code_locked(account_number)

    def _next_code_locked(self, account_number: str) -> str:
        used = {line.lettrage_code for line in self._ledger.account_lines(account_number) if line.lettrage_code}
        used |= {code for account, code in self._reserved_codes if account == account_number}
        return code_after(used)

    def groups(self, account_number: str | None = None) -> list[LettrageGroup]:
        """Groupes de lettrage d'un compte, ou de tous les comptes."""
        if account_number is not None:
            self._require_account(account_number)
            lines = self._ledger.account_lines(account_number)
        else:
            lines = [line for entry in self._store.list_entries() for line in entry.posted_lines()]
        found = group_by_lettrage(lines).values()
        return sorted(found, key=lambda g: (g.account_number, len(g.code), g.code))

    def statistics(self, account_number: str) -> LettrageStatistics:
        """Avancement du lettrage, le taux étant pondéré par les montants."""
        self._require_account(account_number)
        lines = self._ledger.account_lines(account_number)
        lettered = [line for line in lines if line.lettrage_code]
        open_lines = [line for line in lines if not line.lettrage_code]
        montant_lettre = sum(abs(line.amount) for line in lettered)
        montant_non_lettre = sum(abs(line.amount) for line in open_lines)
        total = montant_lettre + montant_non_lettre
        taux = 0.0
        if total:
            ratio = Decimal(montant_lettre) * 100 / Decimal(total)
            taux = float(ratio.quantize(Decimal("0.1"), rounding=ROUND_HALF_UP))
        return LettrageStatistics(
            account_number=account_number,
            nb_lignes=len(lines),
            nb_lettrees=len(lettered),
            nb_non_lettrees=len(open_lines),
            nb_groupes=len({line.lettrage_code for line in lettered}),
            montant_lettre=montant_lettre,
            montant_non_lettre=montant_non_lettre,
            taux_lettrage=taux,
        )

    def lines(self, entry_filter: EntryFilter, statut: str | None = None) -> list[PostedLine]:
        """Lignes filtrées, restreintes aux lignes lettrées ou non lettrées selon ``statut``.

        Raises:
            ValidationError: Statut autre que ``lettre`` ou ``non_lettre``.
        """
        if statut not in (None, STATUT_LETTRE, STATUT_NON_LETTRE):
            raise ValidationError(f"Statut de lettrage invalide : '{statut}'")
        found = self._ledger.search(entry_filter)
        if statut == STATUT_LETTRE:
            return [line for line in found if line.lettrage_code]
        if statut == STATUT_NON_LETTRE:
            return [line for line in found if not line.lettrage_code]
        return found

    def history(self, account_number: str | None = None, limit: int = 50) -> list[LettrageHistoryEntry]:
        """Dernières opérations de lettrage, la plus récente en tête."""
        if limit < 1:
            raise ValidationError(f"Limite invalide : {limit}")
        with self._lock:
            entries = list(self._history)
        if account_number is not None:
            entries = [entry for entry in entries if entry.account_number == account_number]
        return entries[::-1][:limit]

    def _record(self, action: str, account_number: str, code: str, lines: Iterable[PostedLine]) -> None:
        chosen = sorted(lines, key=lambda l: l.ref)
        with self._lock:
            entry = LettrageHistoryEntry(
                id=len(self._history) + 1,
                code=code,
                action=action,
                account_number=account_number,
                refs=tuple(line.ref for line in chosen),
                montant=sum(line.debit for line in chosen),
                created_at=datetime.datetime.now(),
            )
            self._history.append(entry)
        logger.debug("Historique de lettrage : %s %s/%s (%d)", action, account_number, code, entry.montant)

    # --- Propositions ---

    def propose(self, account_number: str, tiers_code: str | None = None) -> list[LettrageProposal]:
        """Propositions déterministes sur les lignes non lettrées du compte.

        Args:
            account_number: Compte de tiers à rapprocher.
            tiers_code: Restreint les propositions à un seul tiers.
        """
        self._require_account(account_number)
        open_lines = [line for line in self._ledger.account_lines(account_number) if not line.lettrage_code]

        by_tiers: dict[str | None, list[PostedLine]] = defaultdict(list)
        for line in open_lines:
            by_tiers[line.tiers_code].append(line)
        if tiers_code is not None:
            by_tiers = {tiers_code: by_tiers.get(tiers_code, [])}

        proposals: list[LettrageProposal] = []
        for tiers in sorted(by_tiers, key=lambda t: (t is None, t or "")):
            proposals.extend(self._match_group(account_number, tiers, by_tiers[tiers]))

        logger.info(
            "Lettrage %s : %d propositions sur %d lignes ouvertes",
            account_number,
            len(proposals),
            len(open_lines),
        )
        return proposals

    def _match_group(
        self, account_number: str, tiers_code: str | None, lines: list[PostedLine]
    ) -> list[LettrageProposal]:
        settings = self._config.lettrage
        used: set[LineRef] = set()
        proposals: list[LettrageProposal] = []

        def propose_lines(kind: str, chosen: list[PostedLine]) -> None:
            used.update(line.ref for line in chosen)
            ordered = tuple(sorted(chosen, key=lambda l: l.sort_key))
            proposals.append(LettrageProposal(account_number, tiers_code, kind, ordered))

        debits = [line for line in lines if line.debit > 0]
        credits = [line for line in lines if line.credit > 0]

        # Passe 1 : paires exactes
        for debit in debits:
            for credit in credits:
                if credit.ref not in used and credit.credit == debit.debit:
                    propose_lines(KIND_EXACT, [debit, credit])
                    break

        # Passe 2 : plusieurs pour un, débits cibles puis crédits cibles
        for targets, opposite in ((debits, credits), (credits, debits)):
            for target in targets:
                if target.ref in used:
                    continue
                amount = abs(target.amount)
                candidates = [
                    line for line in opposite if line.ref not in used and abs(line.amount) <= amount
                ][: settings.max_candidates]
                subset = _find_subset(amount, candidates, settings.max_subset_size)
                if subset is not None:
                    propose_lines(KIND_MULTIPLE, [target, *(candidates[i] for i in subset)])

        return proposals

    # --- Mutations ---

    @contextmanager
    def _reserve(self, account_number: str, refs: set[LineRef], code: str | None = None) -> Iterator[str]:
        """Réserve les lignes et le code le temps d'une mutation."""
        with self._lock:
            overlap = self._in_flight & refs
            if overlap:
                raise ConflictError(
                    "Lettrage concurrent en cours sur les lignes "
                    + ", ".join(f"{r.entry_id}/{r.line_no}" for r in sorted(overlap))
                )
            if code is None:
                code = self._next_code_locked(account_number)
            elif (account_number, code) in self._reserved_codes:
                raise ConflictError(f"Code de lettrage '{code}' en cours d'utilisation sur {account_number}")
            self._in_flight |= refs
            self._reserved_codes.add((account_number, code))
        try:
            yield code
        finally:
            with self._lock:
                self._in_flight -= refs
                self._reserved_codes.discard((account_number, code))

    def _locate(self, refs: set[LineRef]) -> dict[LineRef, PostedLine]:
        wanted_ids = {ref.entry_id for ref in refs}
        return {
            line.ref: line
            for entry in self._store.list_entries()
            if entry.id in wanted_ids
            for line in entry.posted_lines()
            if line.ref in refs
        }

    def letter(self, account_number: str, refs: Iterable[LineRef]) -> LettrageGroup:
        """Lettrage manuel d'un ensemble de lignes qui se soldent.

        Raises:
            NotFoundError: Compte inconnu.
            ValidationError: Moins de deux lignes, ligne introuvable ou sur un
                autre compte, ou total non nul.
            ConflictError: Ligne déjà lettrée ou réservée par un autre lettrage.
        """
        wanted = set(refs)
        if len(wanted) < 2:
            raise ValidationError("Un lettrage porte sur au moins deux lignes")
        self._require_account(account_number)

        with self._reserve(account_number, wanted) as code:
            located = self._locate(wanted)
            missing = wanted - set(located)
            if missing:
                raise ValidationError(
                    "Lignes introuvables : " + ", ".join(f"{r.entry_id}/{r.line_no}" for r in sorted(missing))
                )
            foreign = [line for line in located.values() if line.account_number != account_number]
            if foreign:
                raise ValidationError(
                    f"Lignes hors du compte {account_number} : "
                    + ", ".join(f"{l.ref.entry_id}/{l.ref.line_no} ({l.account_number})" for l in foreign)
                )
            coded = [line for line in located.values() if line.lettrage_code]
            if coded:
                raise ConflictError(
                    "Lignes déjà lettrées : "
                    + ", ".join(f"{l.ref.entry_id}/{l.ref.line_no} ('{l.lettrage_code}')" for l in coded)
                )
            ecart = sum(line.amount for line in located.values())
            if ecart != 0:
                raise ValidationError(f"Lettrage non soldé sur {account_number} : écart {ecart}")

            self._store.apply_lettrage(account_number, code, wanted)
            self._record(ACTION_LETTRAGE, account_number, code, located.values())

        lines = tuple(
            sorted(
                (replace(line, lettrage_code=code) for line in located.values()),
                key=lambda l: l.sort_key,
            )
        )
        return LettrageGroup(code=code, account_number=account_number, lines=lines)

    def auto_letter(self, account_number: str) -> LettrageResult:
        """Applique toutes les propositions ; un conflit écarte la proposition, pas le lot."""
        result = LettrageResult(account_number=account_number)
        for proposal in self.propose(account_number):
            try:
                result.groups.append(self.letter(account_number, proposal.refs))
            except ConflictError as exc:
                logger.warning("Proposition de lettrage écartée sur %s : %s", account_number, exc)
                result.conflicts.append((proposal, str(exc)))
        logger.info(
            "Lettrage automatique %s : %d groupes posés, %d conflits",
            account_number,
            len(result.groups),
            len(result.conflicts),
        )
        return result

    def unletter(
        self, account_number: str, code: str, refs: Iterable[LineRef] | None = None
    ) -> list[LineRef]:
        """Délettre tout un groupe, ou une partie si le reste reste soldé.

        Raises:
            NotFoundError: Compte ou code inconnu.
            ValidationError: Le reste du groupe ne serait plus soldé.
            ConflictError: Lignes ou code réservés par une autre opération.
        """
        self._require_account(account_number)
        group_lines = {
            line.ref: line for line in self._ledger.account_lines(account_number) if line.lettrage_code == code
        }
        group_refs = set(group_lines)
        if not group_refs:
            raise NotFoundError(f"Code de lettrage '{code}' inconnu sur le compte {account_number}")
        targets = group_refs if refs is None else set(refs)

        with self._reserve(account_number, group_refs | targets, code):
            cleared = self._store.clear_lettrage(account_number, code, None if refs is None else targets)
            self._record(ACTION_DELETTRAGE, account_number, code, (group_lines[ref] for ref in cleared))
        return cleared
