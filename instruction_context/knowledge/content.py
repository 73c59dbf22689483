"""
Bundled knowledge content: the default fragments and rule tables.

This is static business data.  Deployments with their own content point the
``knowledge_file`` setting at a YAML file in the same shape (see
:mod:`instruction_context.knowledge.loader`) instead of editing this module.
"""

from __future__ import annotations

from ..models import KnowledgeFragment
from .index import EnrichmentRule, KnowledgeIndex, TriggerRule


# ---------------------------------------------------------------------------
# Trigger rules
# ---------------------------------------------------------------------------

TRIGGER_RULES: list[TriggerRule] = [
    TriggerRule(
        topic="hours",
        terms=("close", "open", "hour", "closing time", "opið",
               "lokað", "lokar", "opnunartím"),
    ),
    TriggerRule(
        topic="packages",
        terms=("package", "pass", "admission", "price", "cost", "how much",
               "ticket", "pakki", "pakka", "verð", "kostar", "aðgangur"),
    ),
    TriggerRule(
        topic="ritual",
        terms=("ritual", "skjól", "skjol", "seven steps", "7 steps", "ritúal"),
    ),
    TriggerRule(
        topic="age_policy",
        terms=("age limit", "minimum age", "how old", "aldurstakmark", "lágmarksaldur"),
        conjunctions=(("age", "12"), ("year", "old"), ("ára", "gamal")),
    ),
    TriggerRule(
        topic="transportation",
        terms=("bus", "shuttle", "transfer", "transport", "get there",
               "directions", "parking", "strætó", "rúta", "komast"),
    ),
    TriggerRule(
        topic="dining",
        terms=("restaurant", "food", "to eat", "drink", "dining", "menu",
               "matur", "veitinga", "borða"),
    ),
    TriggerRule(
        topic="facilities",
        terms=("facilities", "changing room", "shower", "locker", "towel",
               "wheelchair", "accessib", "búningsklef", "sturt", "handklæði"),
    ),
    TriggerRule(
        topic="booking_change",
        terms=("cancel", "refund", "reschedule", "change my booking",
               "change booking", "afbóka", "endurgreiðsl", "breyta bókun"),
    ),
    TriggerRule(
        topic="late_arrival",
        terms=("late", "delay", "missed my", "running behind", "sein", "seinkun"),
    ),
    TriggerRule(
        topic="gift_cards",
        terms=("gift card", "gift certificate", "voucher", "gjafakort", "gjafabréf"),
    ),
]

ENRICHMENT_RULES: list[EnrichmentRule] = [
    EnrichmentRule("packages", ("ritual", "skjól", "skjol", "steps", "included"), "ritual"),
    EnrichmentRule("packages", ("gift", "voucher", "gjafa"), "gift_cards"),
    EnrichmentRule("transportation", ("last bus", "return", "schedule", "síðasta"), "hours"),
    EnrichmentRule("booking_change", ("late", "traffic", "flight"), "late_arrival"),
]


# ---------------------------------------------------------------------------
# Fragments: English
# ---------------------------------------------------------------------------

_FRAGMENTS_EN: list[KnowledgeFragment] = [
    KnowledgeFragment(
        id="en.hours.daily",
        language="en",
        topic_tags=("hours",),
        trigger_terms=("opening hours", "what time"),
        body_text=(
            "Opening hours vary by season. Summer (June 1 - September 30): "
            "09:00-23:00 daily. Winter (October 1 - May 31): weekdays 11:00-22:00, "
            "weekends 10:00-22:00. The lagoon closes 30 minutes before the facility "
            "and the bar closes one hour before the facility."
        ),
        priority_hint=80,
    ),
    KnowledgeFragment(
        id="en.hours.holidays",
        language="en",
        topic_tags=("hours",),
        trigger_terms=("christmas", "new year", "holiday"),
        body_text=(
            "Holiday hours: December 24 and 25 open 11:00-18:00, December 31 "
            "open 11:00-18:00, January 1 open 12:00-22:00."
        ),
        priority_hint=60,
    ),
    KnowledgeFragment(
        id="en.packages.overview",
        language="en",
        topic_tags=("packages",),
        trigger_terms=("saman", "sér", "difference between"),
        body_text=(
            "Two packages are offered. Saman (standard): lagoon access, the "
            "seven-step ritual, public changing facilities, towel included. "
            "Sér (premium): everything in Saman plus private changing rooms "
            "with premium amenities."
        ),
        priority_hint=80,
    ),
    KnowledgeFragment(
        id="en.packages.date_night",
        language="en",
        topic_tags=("packages",),
        trigger_terms=("date night", "for two", "couple"),
        body_text=(
            "The Date Night package is for two guests and includes two Sér or "
            "Saman passes, a drink each and a shared platter at the restaurant. "
            "It is bookable from 16:00 onwards."
        ),
        priority_hint=55,
    ),
    KnowledgeFragment(
        id="en.ritual.steps",
        language="en",
        topic_tags=("ritual",),
        trigger_terms=("steps", "cold plunge", "sauna", "steam"),
        body_text=(
            "The ritual has seven steps: 1. Lagoon, 2. Cold plunge, 3. Sauna, "
            "4. Cold fog-mist, 5. Body scrub, 6. Steam, 7. Shower. It is included "
            "in every package and takes about 45 minutes."
        ),
        priority_hint=75,
    ),
    KnowledgeFragment(
        id="en.age.policy",
        language="en",
        topic_tags=("age_policy",),
        trigger_terms=("children", "kids", "teenager"),
        body_text=(
            "Minimum age is 12. Children aged 12-14 must be accompanied by a "
            "guardian aged 18 or older. The birth year counts: children turning "
            "12 within the calendar year may visit. ID may be requested."
        ),
        priority_hint=85,
    ),
    KnowledgeFragment(
        id="en.transport.shuttle",
        language="en",
        topic_tags=("transportation",),
        trigger_terms=("bsi", "bus terminal", "pick up", "pick-up"),
        body_text=(
            "A shuttle runs from BSÍ bus terminal every hour from 13:00. Hotel "
            "pick-up starts 30 minutes earlier. Return buses leave the lagoon "
            "hourly, the last one 30 minutes after closing."
        ),
        priority_hint=70,
    ),
    KnowledgeFragment(
        id="en.transport.driving",
        language="en",
        topic_tags=("transportation",),
        trigger_terms=("drive", "by car", "parking"),
        body_text=(
            "By car the lagoon is about 15 minutes from downtown Reykjavík. Free "
            "parking is available on site, including accessible spaces."
        ),
        priority_hint=50,
    ),
    KnowledgeFragment(
        id="en.dining.options",
        language="en",
        topic_tags=("dining",),
        trigger_terms=("lunch", "dinner", "vegan", "lagoon bar"),
        body_text=(
            "Dining options: the lagoon bar serves drinks in the water (max "
            "three alcoholic drinks per guest); the café serves light meals; "
            "the restaurant serves Icelandic tasting platters with vegan options."
        ),
        priority_hint=60,
    ),
    KnowledgeFragment(
        id="en.facilities.changing",
        language="en",
        topic_tags=("facilities",),
        trigger_terms=("swimsuit", "swimwear", "hairdryer"),
        body_text=(
            "Changing rooms have lockers, showers and hairdryers. Towels are "
            "included. Swimwear can be rented at reception."
        ),
        priority_hint=55,
    ),
    KnowledgeFragment(
        id="en.facilities.accessibility",
        language="en",
        topic_tags=("facilities",),
        trigger_terms=("wheelchair", "disab", "mobility"),
        body_text=(
            "The facility is fully wheelchair accessible, with a chair lift "
            "into the lagoon and accessible private changing rooms. Please "
            "contact us in advance for specific requirements."
        ),
        priority_hint=65,
    ),
    KnowledgeFragment(
        id="en.booking.change",
        language="en",
        topic_tags=("booking_change",),
        trigger_terms=("booking reference", "confirmation", "different date"),
        body_text=(
            "Bookings can be changed or cancelled for a full refund up to 24 "
            "hours before the visit by emailing reservations@example.is with "
            "the booking reference. Third-party bookings must be changed with "
            "the original agent."
        ),
        priority_hint=80,
    ),
    KnowledgeFragment(
        id="en.late.arrival",
        language="en",
        topic_tags=("late_arrival",),
        trigger_terms=("traffic", "flight delay", "arrive late"),
        body_text=(
            "Guests have a 30-minute grace period after their booked time. "
            "Arriving later than that requires contacting us to rebook, "
            "subject to availability."
        ),
        priority_hint=70,
    ),
    KnowledgeFragment(
        id="en.gift.cards",
        language="en",
        topic_tags=("gift_cards", "packages"),
        trigger_terms=("redeem", "gift card code"),
        body_text=(
            "Gift cards are redeemed online when booking by entering the gift "
            "card code at checkout. Saman gift cards can be upgraded to Sér by "
            "paying the price difference."
        ),
        priority_hint=60,
    ),
]


# ---------------------------------------------------------------------------
# Fragments: Icelandic
# ---------------------------------------------------------------------------

_FRAGMENTS_IS: list[KnowledgeFragment] = [
    KnowledgeFragment(
        id="is.hours.daily",
        language="is",
        topic_tags=("hours",),
        trigger_terms=("opnunartími", "hvenær"),
        body_text=(
            "Opnunartími er breytilegur eftir árstíðum. Sumar (1. júní - 30. "
            "september): 09:00-23:00 alla daga. Vetur (1. október - 31. maí): "
            "virka daga 11:00-22:00, um helgar 10:00-22:00. Lóninu er lokað 30 "
            "mínútum fyrir lokun."
        ),
        priority_hint=80,
    ),
    KnowledgeFragment(
        id="is.packages.overview",
        language="is",
        topic_tags=("packages",),
        trigger_terms=("saman", "sér", "munurinn"),
        body_text=(
            "Tveir pakkar eru í boði. Saman: aðgangur að lóninu, sjö skrefa "
            "ritúalið, almenn búningsaðstaða og handklæði. Sér: allt sem er í "
            "Saman auk einkabúningsklefa."
        ),
        priority_hint=80,
    ),
    KnowledgeFragment(
        id="is.ritual.steps",
        language="is",
        topic_tags=("ritual",),
        trigger_terms=("skref", "gufa", "kaldur pottur"),
        body_text=(
            "Ritúalið er í sjö skrefum: lónið, kaldur pottur, sauna, kalt úði, "
            "skrúbbur, gufa og sturta. Það er innifalið í öllum pökkum."
        ),
        priority_hint=75,
    ),
    KnowledgeFragment(
        id="is.age.policy",
        language="is",
        topic_tags=("age_policy",),
        trigger_terms=("börn", "barn", "unglingar"),
        body_text=(
            "Aldurstakmark er 12 ár. Börn á aldrinum 12-14 ára þurfa að vera í "
            "fylgd með forráðamanni (18 ára eða eldri). Fæðingarárið gildir."
        ),
        priority_hint=85,
    ),
    KnowledgeFragment(
        id="is.transport.shuttle",
        language="is",
        topic_tags=("transportation",),
        trigger_terms=("bsí", "umferðarmiðstöð"),
        body_text=(
            "Rúta fer frá BSÍ á klukkutíma fresti frá kl. 13:00. Síðasta rúta "
            "til baka fer 30 mínútum eftir lokun."
        ),
        priority_hint=70,
    ),
    KnowledgeFragment(
        id="is.dining.options",
        language="is",
        topic_tags=("dining",),
        trigger_terms=("hádegismat", "kvöldmat", "barinn"),
        body_text=(
            "Veitingar: barinn í lóninu, kaffihús með léttum réttum og "
            "veitingastaður með íslenskum smakkplöttum, einnig vegan."
        ),
        priority_hint=60,
    ),
    KnowledgeFragment(
        id="is.facilities.changing",
        language="is",
        topic_tags=("facilities",),
        trigger_terms=("sundföt", "hárþurrk", "skáp"),
        body_text=(
            "Í búningsklefum eru skápar, sturtur og hárþurrkur. Handklæði eru "
            "innifalin og hægt er að leigja sundföt í afgreiðslu."
        ),
        priority_hint=55,
    ),
    KnowledgeFragment(
        id="is.booking.change",
        language="is",
        topic_tags=("booking_change",),
        trigger_terms=("bókunarnúmer", "staðfesting"),
        body_text=(
            "Hægt er að breyta eða afbóka með fullri endurgreiðslu allt að 24 "
            "klst. fyrir heimsókn með tölvupósti á reservations@example.is."
        ),
        priority_hint=80,
    ),
    KnowledgeFragment(
        id="is.late.arrival",
        language="is",
        topic_tags=("late_arrival",),
        trigger_terms=("umferð", "seinkun"),
        body_text=(
            "Gestir hafa 30 mínútna svigrúm eftir bókaðan tíma. Ef seinkun er "
            "meiri þarf að hafa samband og bóka nýjan tíma."
        ),
        priority_hint=70,
    ),
    KnowledgeFragment(
        id="is.gift.cards",
        language="is",
        topic_tags=("gift_cards", "packages"),
        trigger_terms=("innleysa", "kóða"),
        body_text=(
            "Gjafakort eru innleyst á netinu við bókun með því að slá inn kóða "
            "gjafakortsins. Hægt er að uppfæra Saman gjafakort í Sér."
        ),
        priority_hint=60,
    ),
]


FRAGMENTS: list[KnowledgeFragment] = _FRAGMENTS_EN + _FRAGMENTS_IS


def build_default_index() -> KnowledgeIndex:
    """Build the index from the bundled content."""
    return KnowledgeIndex(FRAGMENTS, TRIGGER_RULES, ENRICHMENT_RULES)
