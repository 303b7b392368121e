from __future__ import annotations
from dataclasses import dataclass, field
from typing import Dict, List, Sequence, Tuple

Threshold = Tuple[float, str]


class UnknownQuestionnaire(ValueError):
    pass


class InvalidAnswers(ValueError):
    pass


@dataclass(frozen=True)
class Questionnaire:
    type: str
    label: str              # used in invite emails
    title: str
    subtitle: str
    path: str               # portal route: /app/paziente/questionari/<path>
    question_count: int
    options: Tuple[int, ...]
    ladder: Tuple[Threshold, ...]   # (threshold, label), highest first
    default_severity: str
    mode: str = "sum"       # "mean": ladder applies to total / question_count
    max_score: int = field(init=False)

    def __post_init__(self):
        # mean-scored ladders are on the per-item scale
        top = max(self.options)
        object.__setattr__(self, "max_score", top if self.mode == "mean" else top * self.question_count)

    def severity_for(self, total: int) -> str:
        value = total / self.question_count if self.mode == "mean" else total
        for threshold, label in self.ladder:
            if value >= threshold:
                return label
        return self.default_severity

    def public(self) -> Dict:
        return {
            "type": self.type,
            "label": self.label,
            "title": self.title,
            "subtitle": self.subtitle,
            "path": self.path,
            "question_count": self.question_count,
            "options": list(self.options),
            "max_score": self.max_score,
        }


ZERO_TO_THREE = (0, 1, 2, 3)
ZERO_TO_FOUR = (0, 1, 2, 3, 4)
ONE_TO_FIVE = (1, 2, 3, 4, 5)

_QUESTIONNAIRES: List[Questionnaire] = [
    Questionnaire(
        "ansia", "Test ansia (GAD-7)", "Test Ansia (GAD-7)",
        "Nelle ultime 2 settimane, con quale frequenza ti hanno dato fastidio i seguenti problemi?",
        "gad7", 7, ZERO_TO_THREE,
        ((15, "Ansia grave"), (10, "Ansia moderata"), (5, "Ansia lieve")),
        "Ansia minima",
    ),
    Questionnaire(
        "depressione", "Test depressione (PHQ-9)", "Test Depressione (PHQ-9)",
        "Nelle ultime 2 settimane, con quale frequenza ti hanno dato fastidio i seguenti problemi?",
        "phq9", 9, ZERO_TO_THREE,
        ((20, "Depressione grave"), (15, "Depressione moderatamente grave"),
         (10, "Depressione moderata"), (5, "Depressione lieve")),
        "Minima",
    ),
    Questionnaire(
        "ansia-sociale", "Test ansia sociale (SPIN)", "Test Ansia Sociale (SPIN)",
        "Nell'ultima settimana, quanto ti hanno disturbato le seguenti situazioni?",
        "ansia-sociale", 17, ZERO_TO_FOUR,
        ((55, "Grave"), (40, "Moderata-grave"), (21, "Moderata"), (1, "Lieve")),
        "Minima",
    ),
    Questionnaire(
        "adhd", "Test ADHD (ASRS-v1.1)", "Test ADHD (ASRS-v1.1)",
        "Negli ultimi 6 mesi, con quale frequenza hai avuto queste difficoltà?",
        "adhd", 18, ZERO_TO_FOUR,
        ((40, "Alta probabilità ADHD"), (24, "Moderata probabilità ADHD"),
         (12, "Bassa probabilità ADHD")),
        "Minima",
    ),
    Questionnaire(
        "alessitimia", "Test alessitimia (TAS-20)", "Test Alessitimia (TAS-20)",
        "Indica quanto sei d'accordo con ciascuna affermazione.",
        "alessitimia", 20, ONE_TO_FIVE,
        ((61, "Alessitimia presente"), (52, "Possibile alessitimia")),
        "Assenza di alessitimia",
    ),
    Questionnaire(
        "autismo", "Test autismo (AQ-10)", "Test Autismo (AQ-10)",
        "Indica quanto sei d'accordo con ciascuna affermazione.",
        "autismo", 10, (0, 1),
        ((6, "Possibile spettro autistico – approfondire"),
         (4, "Caratteristiche autistiche borderline")),
        "Punteggio nella norma",
    ),
    Questionnaire(
        "autostima", "Test autostima (Rosenberg)", "Test Autostima (RSES)",
        "Indica quanto sei d'accordo con ciascuna affermazione.",
        "autostima", 10, ZERO_TO_THREE,
        ((25, "Alta autostima"), (15, "Autostima nella norma"), (8, "Bassa autostima")),
        "Autostima molto bassa",
    ),
    Questionnaire(
        "burnout", "Test burnout (CBI)", "Test Burnout (CBI)",
        "Con quale frequenza ti senti così?",
        "burnout", 12, (0, 25, 50, 75, 100),
        ((75, "Burnout grave"), (50, "Burnout moderato"), (25, "Burnout lieve")),
        "Assenza di burnout",
        mode="mean",
    ),
    Questionnaire(
        "depressione-post-partum", "Test depressione post-partum (EPDS)",
        "Test Depressione Post-Partum (EPDS)",
        "Negli ultimi 7 giorni, come ti sei sentita?",
        "depressione-post-partum", 10, ZERO_TO_THREE,
        ((13, "Possibile depressione post-partum – valutare urgentemente"),
         (10, "Rischio moderato – monitorare attentamente")),
        "Basso rischio",
    ),
    Questionnaire(
        "dca", "Test DCA", "Test Disturbi del Comportamento Alimentare (EDE-Q)",
        "Negli ultimi 28 giorni, con quale frequenza...?",
        "dca", 10, (0, 1, 2, 3, 4, 5, 6),
        ((4, "Grave – intervento urgente"), (2.5, "Moderata"), (1, "Lieve")),
        "Assenza di DCA",
        mode="mean",
    ),
    Questionnaire(
        "doc", "Test DOC", "Test Disturbo Ossessivo-Compulsivo (OCI-R)",
        "Nell'ultimo mese, quanto ti hanno disturbato le seguenti esperienze?",
        "doc", 18, ZERO_TO_FOUR,
        ((40, "Grave"), (28, "Moderata"), (21, "Lieve")),
        "Subclinica / assenza",
    ),
    Questionnaire(
        "insonnia", "Test insonnia (ISI)", "Test Insonnia (ISI)",
        "Valuta la gravità dei tuoi problemi di sonno nelle ultime 2 settimane.",
        "insonnia", 7, ZERO_TO_FOUR,
        ((22, "Insonnia clinica grave"), (15, "Insonnia clinica moderata"),
         (8, "Insonnia subclinica")),
        "Assenza di insonnia",
    ),
    Questionnaire(
        "ipocondria", "Test ipocondria", "Test Ipocondria (HAI)",
        "Scegli l'affermazione che descrive meglio come ti senti.",
        "ipocondria", 6, ZERO_TO_THREE,
        ((15, "Ansia per la salute grave"), (10, "Ansia per la salute moderata"),
         (5, "Ansia per la salute lieve")),
        "Assenza di ipocondria",
    ),
    Questionnaire(
        "borderline", "Test disturbo borderline", "Test Disturbo Borderline (MSI-BPD)",
        "Negli ultimi tempi, ti riconosci in queste affermazioni?",
        "borderline", 10, (0, 1),
        ((7, "Alta probabilità BPD – approfondire"), (4, "Moderata probabilità BPD")),
        "Bassa probabilità BPD",
    ),
    Questionnaire(
        "cannabis", "Test abuso di cannabis", "Test Uso di Cannabis (CUDIT-R)",
        "Negli ultimi 6 mesi...",
        "cannabis", 8, ZERO_TO_FOUR,
        ((13, "Probabile disturbo da uso di cannabis"), (8, "Uso problematico – monitorare")),
        "Uso non problematico",
    ),
    Questionnaire(
        "dipendenza-lavoro", "Test dipendenza da lavoro", "Test Dipendenza da Lavoro (BWAS)",
        "Indica quanto spesso ti succede.",
        "dipendenza-lavoro", 7, ONE_TO_FIVE,
        ((25, "Alta probabilità workaholism"), (20, "Moderata probabilità workaholism")),
        "Bassa probabilità workaholism",
    ),
    Questionnaire(
        "dipendenza-internet", "Test dipendenza da internet", "Test Dipendenza da Internet (IAT)",
        "Indica quanto spesso ti succede.",
        "dipendenza-internet", 12, ONE_TO_FIVE,
        ((49, "Dipendenza da internet significativa"), (31, "Uso problematico – monitorare")),
        "Uso normale / basso rischio",
    ),
    Questionnaire(
        "ptsd", "Test PTSD", "Test Disturbo da Stress Post-Traumatico (PCL-5)",
        "Nell'ultimo mese, quanto ti hanno disturbato i seguenti problemi?",
        "ptsd", 20, ZERO_TO_FOUR,
        ((33, "PTSD probabile – valutazione clinica necessaria"),
         (20, "Sintomi significativi – monitorare")),
        "Sotto soglia clinica",
    ),
    Questionnaire(
        "dismorfofobia", "Test dismorfofobia", "Test Dismorfofobia (BDD)",
        "Pensa al tuo aspetto fisico nell'ultimo mese.",
        "dismorfofobia", 7, ZERO_TO_FOUR,
        ((20, "BDD grave – intervento urgente"), (12, "BDD moderata"), (6, "BDD lieve")),
        "Assenza di BDD",
    ),
    Questionnaire(
        "emetofobia", "Test emetofobia", "Test Emetofobia (SPOVI)",
        "Nell'ultima settimana...",
        "emetofobia", 10, ZERO_TO_FOUR,
        ((30, "Emetofobia grave"), (20, "Emetofobia moderata"), (10, "Emetofobia lieve")),
        "Assenza di emetofobia",
    ),
    Questionnaire(
        "binge-eating", "Test binge eating (BES)", "Test Binge Eating (BES)",
        "Scegli l'affermazione che descrive meglio come ti senti.",
        "binge-eating", 16, ZERO_TO_THREE,
        ((27, "Binge eating grave"), (17, "Binge eating moderato")),
        "Binge eating assente o lieve",
    ),
    Questionnaire(
        "orientamento-psicoterapeutico", "Test orientamento psicoterapeutico",
        "Quale orientamento psicoterapeutico fa per te?",
        "Indica quanto ti ritrovi in ciascuna affermazione.",
        "orientamento-psicoterapeutico", 10, ZERO_TO_FOUR,
        ((30, "Orientamento psicodinamico-relazionale"),
         (20, "Orientamento cognitivo-comportamentale"),
         (10, "Orientamento umanistico-esistenziale")),
        "Profilo misto – da approfondire in seduta",
    ),
]

REGISTRY: Dict[str, Questionnaire] = {q.type: q for q in _QUESTIONNAIRES}


def get_questionnaire(qtype: str) -> Questionnaire:
    try:
        return REGISTRY[qtype]
    except KeyError:
        raise UnknownQuestionnaire(f"Tipo questionario non valido: {qtype}")


def severity_for(qtype: str, total: int) -> str:
    return get_questionnaire(qtype).severity_for(total)


def score(qtype: str, answers: Sequence[int]) -> Tuple[int, str]:
    """Validate a full set of answers and return (total, severity)."""
    q = get_questionnaire(qtype)
    if len(answers) != q.question_count:
        raise InvalidAnswers(
            f"Risposte incomplete: attese {q.question_count}, ricevute {len(answers)}"
        )
    for i, value in enumerate(answers, start=1):
        if isinstance(value, bool) or value not in q.options:
            raise InvalidAnswers(f"Risposta non valida alla domanda {i}: {value}")
    total = sum(answers)
    return total, q.severity_for(total)
