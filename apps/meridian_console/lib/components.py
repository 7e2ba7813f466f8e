"""Rendering of meridian.ui cards inside Streamlit."""

import streamlit as st
from markupsafe import Markup

from meridian.ui import card, card_content, card_header, card_title, cn, style_tag


def render(*fragments: Markup) -> None:
    st.markdown(style_tag() + Markup("").join(fragments), unsafe_allow_html=True)


def card_grid(cards: list[Markup], columns: int = 4) -> None:
    """Lay cards out in a CSS grid row."""
    render(
        Markup('<div class="{}" style="display:grid;grid-template-columns:repeat({},minmax(0,1fr));gap:1rem">').format(
            cn("grid gap-4"), columns
        )
        + Markup("").join(cards)
        + Markup("</div>")
    )


def section_card(title: str, *body: Markup, class_name=None) -> Markup:
    return card(card_header(card_title(title)), card_content(*body), class_name=class_name)
