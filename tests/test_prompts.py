from gm.context import (
    AdventureContext,
    ChapterContext,
    CharacterContext,
    PlayerContext,
    QuestContext,
)
from gm.prompts import (
    CONTEXT_PRECEDENCE,
    build_context_prompt,
    context_lines,
    difficulty_label,
    join_sections,
    resolve_voice,
    verbosity_rules,
)


def test_verbosity_rules_ranges() -> None:
    assert (verbosity_rules("short").min, verbosity_rules("short").max) == (2, 4)
    assert (verbosity_rules("concise").min, verbosity_rules("concise").max) == (2, 4)
    assert (verbosity_rules("rich").min, verbosity_rules("rich").max) == (4, 8)
    assert (verbosity_rules("Verbose").min, verbosity_rules("Verbose").max) == (4, 8)
    assert (verbosity_rules(None).min, verbosity_rules(None).max) == (3, 7)
    assert (verbosity_rules("normal").min, verbosity_rules("normal").max) == (3, 7)


def test_difficulty_label() -> None:
    assert difficulty_label(None) == "Standard"
    assert difficulty_label(0) == "Facile"
    assert difficulty_label(1) == "Facile"
    assert difficulty_label(2) == "Standard"
    assert difficulty_label(3) == "Difficile"


def test_join_sections_drops_absent_parts() -> None:
    assert join_sections(["a", None, "", "b"]) == "a\nb"


def test_adventure_context_comes_before_chapter_context() -> None:
    text = build_context_prompt(
        adventure=AdventureContext(adventure_id="adv", context_text="General home reset"),
        chapter=ChapterContext(chapter_id="ch", context_text="Focus on kitchen"),
    )
    assert text is not None
    assert text.index("General home reset") < text.index("Focus on kitchen")
    assert CONTEXT_PRECEDENCE in text
    assert text.index("Focus on kitchen") < text.index(CONTEXT_PRECEDENCE)


def test_context_lines_order_and_precedence() -> None:
    lines = [line for line in context_lines("global", "local") if line]
    assert "global" in lines[0]
    assert "local" in lines[1]
    assert lines[2] == CONTEXT_PRECEDENCE
    assert [line for line in context_lines(None, "local") if line] == [
        "CONTEXTE DU CHAPITRE:\nlocal"
    ]


def test_build_context_prompt_returns_none_without_content() -> None:
    assert build_context_prompt() is None
    assert build_context_prompt(adventure=AdventureContext(adventure_id="adv")) is None


def test_build_context_prompt_renders_player_character_and_quest() -> None:
    character = CharacterContext(name="Sage", emoji="🦉", tone="doux", motto="Avance.")
    text = build_context_prompt(
        player=PlayerContext(display_name="Louise", context_home="Petit   appartement"),
        character=character,
        quest=QuestContext(chapter_quest_id="cq", title="Vider l'évier", difficulty=3),
    )
    assert "Louise" in text
    assert "Petit appartement" in text
    assert "🦉 Sage" in text
    assert "Tone: doux" in text
    assert "Vider l'évier" in text
    assert "Difficile" in text
    assert text.index("CONTEXTE DU JOUEUR") < text.index("STYLE DU MAÎTRE DU JEU")


def test_resolve_voice_defaults() -> None:
    voice = resolve_voice(None)
    assert (voice.tone, voice.style, voice.verbosity) == ("neutre", "motivant", "normal")
    voice = resolve_voice(CharacterContext(name="x", verbosity="rich"))
    assert voice.verbosity == "rich"
    assert voice.tone == "neutre"
