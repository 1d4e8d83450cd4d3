import pytest

from utils.scoring import NormalizedAnalysis, Issue, Suggestion
from utils.section_merger import (
    merge_sections, merge_free_form, split_subsections, strip_quick_wins, SECTION_SEPARATOR
)


def _analysis(score, issue, suggestion, description, free_form="", provider="huggingface"):
    return NormalizedAnalysis(
        issues=[Issue(text=issue)],
        suggestions=[Suggestion(title=suggestion)],
        overall_score=score,
        visual_description=description,
        free_form_analysis=free_form,
        provider=provider,
    )


def test_score_is_mean_of_present_sections():
    merged = merge_sections({
        "header": _analysis(80, "a", "b", "Header desc"),
        "footer": _analysis(60, "c", "d", "Footer desc"),
    })
    assert merged.overall_score == 70


def test_section_order_does_not_change_score():
    forward = merge_sections({
        "header": _analysis(80, "a", "b", "Header desc"),
        "main": _analysis(60, "c", "d", "Main desc"),
    })
    backward = merge_sections({
        "main": _analysis(60, "c", "d", "Main desc"),
        "header": _analysis(80, "a", "b", "Header desc"),
    })
    assert forward.overall_score == backward.overall_score == 70


def test_merge_leaves_section_results_untouched():
    header = _analysis(80, "Quick win: logo is blurry", "Enlarge logo", "Header desc")
    merged = merge_sections({"header": header, "main": _analysis(60, "c", "d", "Main desc")})
    assert merged.issues[0].section == "header"
    assert merged.issues[0].text == "logo is blurry"
    assert header.issues[0].section is None
    assert header.issues[0].text == "Quick win: logo is blurry"
    assert header.suggestions[0].section is None


def test_items_are_tagged_with_section():
    merged = merge_sections({
        "header": _analysis(80, "Logo too small", "Enlarge logo", "Header desc"),
        "main": _analysis(70, "Dense text", "Add whitespace", "Main desc"),
    })
    assert [(i.text, i.section) for i in merged.issues] == [
        ("Logo too small", "header"), ("Dense text", "main")
    ]
    assert [s.section for s in merged.suggestions] == ["header", "main"]


def test_descriptions_are_joined_with_separator():
    merged = merge_sections({
        "header": _analysis(80, "a", "b", "Header desc"),
        "main": _analysis(70, "c", "d", "Main desc"),
    })
    assert merged.visual_description == "[Header] Header desc" + SECTION_SEPARATOR + "[Main] Main desc"


def test_empty_input_is_rejected():
    with pytest.raises(ValueError):
        merge_sections({})


def test_quick_win_phrases_are_stripped_everywhere():
    merged = merge_sections({
        "header": NormalizedAnalysis(
            issues=[Issue(text="Quick win: logo is blurry", recommendation="Быстрая победа: заменить логотип")],
            suggestions=[Suggestion(title="Quick wins - tighten spacing", steps=["quick win: reduce padding"])],
            overall_score=50,
            visual_description="A quick win is visible in the hero.",
        ),
    })
    assert merged.issues[0].text == "logo is blurry"
    assert merged.issues[0].recommendation == "заменить логотип"
    assert "quick" not in merged.suggestions[0].title.lower()
    assert merged.suggestions[0].steps == ["reduce padding"]
    assert "quick win" not in merged.visual_description.lower()


def test_strip_quick_wins_keeps_other_text():
    assert strip_quick_wins("Fix the header (quick win)") == "Fix the header"
    assert strip_quick_wins("Быстрые победы: поднять кнопку") == "поднять кнопку"
    assert strip_quick_wins(None) is None


def test_split_subsections_english_and_russian():
    text = (
        "A landing page for a bakery.\n"
        "## Strengths\n"
        "- Photos: appetizing photos\n"
        "Проблемы:\n"
        "- Мелкий шрифт в меню\n"
        "Рекомендации:\n"
        "- Увеличить шрифт\n"
        "Final score: 68/100\n"
    )
    parts = split_subsections(text)
    assert parts["overview"] == ["A landing page for a bakery."]
    assert parts["strengths"] == ["- Photos: appetizing photos"]
    assert parts["problems"] == ["- Мелкий шрифт в меню"]
    assert parts["recommendations"] == ["- Увеличить шрифт"]
    assert parts["final_score"] == ["68/100"]


def test_numbered_list_items_stay_in_their_subsection():
    text = (
        "Problems:\n"
        "- Low contrast\n"
        "Recommendations:\n"
        "1. Fix the contrast issue\n"
        "2. Enlarge the buttons\n"
    )
    parts = split_subsections(text)
    assert parts["problems"] == ["- Low contrast"]
    assert parts["recommendations"] == ["1. Fix the contrast issue", "2. Enlarge the buttons"]


def test_numbered_headings_are_recognised():
    text = "1. Overview\nA shop.\n2. Problems:\n1. Slow hero video\n3. Final score: 55/100\n"
    parts = split_subsections(text)
    assert parts["overview"] == ["A shop."]
    assert parts["problems"] == ["1. Slow hero video"]
    assert parts["final_score"] == ["55/100"]


def test_free_form_is_deduplicated_across_sections():
    header = (
        "Overview:\n- Layout: clean\n"
        "Strengths:\n- Navigation: clear\n"
        "Problems:\n- Low contrast in hero\n"
        "Recommendations:\n- Darken the hero overlay\n"
    )
    main = (
        "Overview:\n- Layout: clean two column grid with generous spacing\n"
        "Strengths:\n- Navigation: clear\n"
        "Problems:\n- Low contrast in hero\n- Long paragraphs\n"
        "Recommendations:\n- Darken the hero overlay\n"
    )
    merged = merge_free_form({"header": header, "main": main})
    assert merged.count("Low contrast in hero") == 1
    assert merged.count("Darken the hero overlay") == 1
    assert "- Long paragraphs" in merged
    assert "clean two column grid" in merged
    assert merged.count("Layout:") == 1
    assert merged.count("Navigation: clear") == 1
    assert merged.index("## Overview") < merged.index("## Strengths") < merged.index("## Problems")


def test_single_section_keeps_free_form_verbatim():
    text = "Overview:\nSolid page."
    merged = merge_sections({"full": _analysis(88, "a", "b", "desc", free_form=text)})
    assert merged.free_form_analysis == text
    assert merged.overall_score == 88
