"""Prompt text for the hairstyle changer.

Both builders are pure: same inputs, same string. The 4o prompt can refer to
attached reference images; Kontext edits a single input image so it only gets
names.
"""

from typing import Optional


def _clean_detail(detail: Optional[str]) -> str:
    return (detail or "").strip()


def build_4o_prompt(
    *,
    hairstyle: str,
    haircolor: str,
    haircolor_hex: Optional[str] = None,
    with_style_reference: bool = False,
    with_color_reference: bool = False,
    detail: Optional[str] = None,
) -> str:
    lines = [
        "Change only the hairstyle of the person in the first image.",
        "Keep the face, identity, expression, skin tone, clothing, pose and background unchanged.",
        f"New hairstyle: {hairstyle}.",
    ]
    if with_style_reference:
        lines.append("Use the attached hairstyle reference image as the target cut and shape.")

    if haircolor_hex:
        lines.append(f"Hair color: {haircolor} ({haircolor_hex}).")
    else:
        lines.append("Keep the original hair color.")
    if with_color_reference:
        lines.append("Match the hair color shown in the attached color reference image.")

    detail = _clean_detail(detail)
    if detail:
        lines.append(f"Additional details: {detail}")

    lines.append("The result must look like a natural, photorealistic portrait.")
    return "\n".join(lines)


def build_kontext_prompt(*, hairstyle: str, haircolor: str, detail: Optional[str] = None) -> str:
    prompt = (
        f"Change the person's hairstyle to {hairstyle} with {haircolor} hair color, "
        "while keeping the face, identity, pose, clothing and background exactly the same"
    )
    detail = _clean_detail(detail)
    if detail:
        prompt += f". {detail}"
    return prompt + "."
