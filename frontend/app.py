from dotenv import load_dotenv

load_dotenv(".env.local"); load_dotenv()  # also loads .env if present

import base64
import datetime as dt
import os

import pandas as pd
import requests
import streamlit as st

st.set_page_config(page_title="Feuilles de match", layout="wide")

BACKEND = os.getenv("BACKEND_URL", "http://127.0.0.1:8000")

MAPPING_COLUMNS = ["champ_pdf", "type", "mapping", "valeur_possible"]
MAPPING_TYPES = ["global", "joueur", "educateur", "autre"]

if "mapping_rows" not in st.session_state:
    st.session_state.mapping_rows = None
if "generated" not in st.session_state:
    st.session_state.generated = None


def show_error(r: requests.Response) -> None:
    try:
        st.error(r.json().get("detail", r.text))
    except ValueError:
        st.error(r.text)


def mappings_to_df(mappings: list[dict]) -> pd.DataFrame:
    rows = [
        {
            "champ_pdf": m.get("champ_pdf", ""),
            "type": m.get("type", "autre"),
            "mapping": m.get("mapping", ""),
            "valeur_possible": ", ".join(m.get("valeur_possible", [])),
        }
        for m in mappings
    ]
    return pd.DataFrame(rows, columns=MAPPING_COLUMNS)


def df_to_mappings(df: pd.DataFrame) -> list[dict]:
    entries = []
    for row in df.fillna("").to_dict(orient="records"):
        samples = [v.strip() for v in str(row.get("valeur_possible", "")).split(",") if v.strip()]
        entries.append(
            {
                "champ_pdf": str(row.get("champ_pdf", "")).strip(),
                "type": row.get("type") or "autre",
                "mapping": str(row.get("mapping", "")).strip(),
                "valeur_possible": samples,
            }
        )
    return entries


# ------------- Sidebar: templates -------------

st.sidebar.title("Modèles")

uploaded = st.sidebar.file_uploader("Importer un modèle PDF", type=["pdf"])
if uploaded is not None and st.sidebar.button("Envoyer le modèle"):
    payload = {"pdf_base64": base64.b64encode(uploaded.getvalue()).decode("ascii")}
    r = requests.post(f"{BACKEND}/templates/{uploaded.name}", json=payload, timeout=60)
    if r.ok:
        st.sidebar.success(f"{uploaded.name} importé ({r.json().get('field_count', 0)} champs)")
    else:
        show_error(r)

templates: list[str] = []
r = requests.get(f"{BACKEND}/templates", timeout=30)
if r.ok:
    templates = r.json().get("templates", [])
else:
    st.sidebar.error(r.text)

template = st.sidebar.selectbox("Modèle", templates) if templates else None
if not template:
    st.sidebar.info("Aucun modèle disponible.")
st.sidebar.caption(f"Backend: {BACKEND}")

st.title("Feuilles de match")

if template:
    tab_fields, tab_mapping, tab_generate = st.tabs(["Champs", "Mapping", "Générer"])

    # ------------- Form fields -------------
    with tab_fields:
        r = requests.get(f"{BACKEND}/templates/{template}/fields", timeout=60)
        if r.ok:
            fields = r.json().get("fields", [])
            st.write(f"{len(fields)} champs de formulaire")
            st.dataframe(pd.DataFrame(fields), use_container_width=True)
        else:
            show_error(r)

    # ------------- Mapping review -------------
    with tab_mapping:
        col1, col2 = st.columns(2)
        if col1.button("Charger le mapping"):
            r = requests.get(f"{BACKEND}/mappings/{template}", timeout=30)
            if r.ok:
                st.session_state.mapping_rows = r.json().get("mappings", [])
            elif r.status_code == 404:
                st.info("Aucun mapping enregistré pour ce modèle, lancez une analyse.")
            else:
                show_error(r)

        force = col2.checkbox("Forcer une nouvelle analyse", value=False)
        if col2.button("Analyser le modèle"):
            with st.spinner("Analyse en cours…"):
                r = requests.post(
                    f"{BACKEND}/templates/{template}/analyze", params={"force": force}, timeout=180
                )
            if r.ok:
                result = r.json()
                st.session_state.mapping_rows = result.get("mappings", [])
                if result.get("from_store"):
                    st.info("Mapping existant réutilisé.")
                else:
                    st.success(f"{len(st.session_state.mapping_rows)} champs proposés.")
            else:
                show_error(r)

        if st.session_state.mapping_rows is not None:
            edited = st.data_editor(
                mappings_to_df(st.session_state.mapping_rows),
                num_rows="dynamic",
                use_container_width=True,
                column_config={
                    "type": st.column_config.SelectboxColumn("type", options=MAPPING_TYPES, required=True),
                },
                key=f"mapping_editor_{template}",
            )
            if st.button("Enregistrer le mapping"):
                entries = df_to_mappings(edited)
                incomplete = [e for e in entries if not e["champ_pdf"] or not e["mapping"]]
                if incomplete:
                    st.error("Chaque ligne doit avoir un champ PDF et un mapping.")
                else:
                    r = requests.put(f"{BACKEND}/mappings/{template}", json={"mappings": entries}, timeout=30)
                    if r.ok:
                        st.session_state.mapping_rows = r.json().get("mappings", [])
                        st.success("Mapping enregistré.")
                    else:
                        show_error(r)

    # ------------- Generation -------------
    with tab_generate:
        st.subheader("Tournoi")
        c1, c2, c3 = st.columns(3)
        location = c1.text_input("Lieu", value="")
        date = c2.date_input("Date", value=dt.date.today())
        category = c3.text_input("Catégorie", value="")
        name = st.text_input("Nom de la manifestation (optionnel)", value="")

        st.subheader("Joueurs")
        players_df = st.data_editor(
            pd.DataFrame(
                columns=["last_name", "first_name", "license_number", "can_play_forward", "can_referee"]
            ).astype({"can_play_forward": bool, "can_referee": bool}),
            num_rows="dynamic",
            use_container_width=True,
            key="players_editor",
        )

        st.subheader("Éducateurs")
        coaches_df = st.data_editor(
            pd.DataFrame(columns=["id", "last_name", "first_name", "license_number", "diploma"]),
            num_rows="dynamic",
            use_container_width=True,
            key="coaches_editor",
        )
        coach_ids = [str(c) for c in coaches_df["id"].dropna().tolist() if str(c).strip()]
        referent = st.selectbox("Éducateur référent", coach_ids) if coach_ids else None

        if st.button("Générer la feuille de match"):
            players = [
                {k: v for k, v in p.items() if not pd.isna(v) and v != ""}
                for p in players_df.dropna(subset=["last_name"]).to_dict(orient="records")
            ]
            coaches = [
                {k: ("" if pd.isna(v) else str(v)) for k, v in c.items()}
                for c in coaches_df.dropna(subset=["id"]).to_dict(orient="records")
            ]
            payload = {
                "template": {"name": template, "file_location": template},
                "tournament": {
                    "location": location,
                    "date": date.isoformat(),
                    "category": category,
                    "name": name or None,
                },
                "players": players,
                "coaches": coaches,
                "referent_coach_id": referent,
            }
            with st.spinner("Génération…"):
                r = requests.post(f"{BACKEND}/match-sheets/generate", json=payload, timeout=120)
            if r.ok:
                st.session_state.generated = r.json()
            else:
                show_error(r)

        generated = st.session_state.generated
        if generated:
            meta = generated.get("metadata", {})
            st.success(f"{meta.get('touched_count', 0)} champs remplis")
            skipped = generated.get("skipped", [])
            if skipped:
                with st.expander(f"{len(skipped)} champs ignorés"):
                    st.dataframe(pd.DataFrame(skipped), use_container_width=True)
            st.download_button(
                "Télécharger le PDF",
                data=base64.b64decode(generated["pdf_base64"]),
                file_name=meta.get("filename", "feuille_match.pdf"),
                mime="application/pdf",
            )
