"""Spatial handlers: resize, crop, rotate, flip."""

from __future__ import annotations

from ...operations.model import Crop, Flip, Resize, Rotate
from ..handler_contract import CompileContext, Phase, make_result, rotate_filter
from ._common import num, reencode

CIRCLE_MASK = (
    "format=yuva420p,geq=lum='p(X,Y)':cb='p(X,Y)':cr='p(X,Y)':"
    "a='if(lte(pow(X-W/2,2)+pow(Y-H/2,2),pow(min(W,H)/2,2)),255,0)'"
)


def _c_resize(op: Resize, ctx: CompileContext):
    ctx.require_video(op.input, op.verb)
    if op.factor is not None:
        scale = f"scale=trunc(iw*{num(op.factor)}/2)*2:trunc(ih*{num(op.factor)}/2)*2"
        note = f"{num(op.factor * 100)}% -> {scale}"
    else:
        scale = f"scale={op.width}:{op.height}"
        note = f"{scale} (-2 keeps the aspect ratio with an even size)" if -2 in (op.width, op.height) else scale
    return make_result(vf=[scale], opts=reencode(ctx), phase=Phase.SCALE, notes=[note])


def _c_crop(op: Crop, ctx: CompileContext):
    ctx.require_video(op.input, op.verb)
    if op.shape == "square":
        return make_result(
            vf=["crop='min(iw,ih)':'min(iw,ih)':(iw-ow)/2:(ih-oh)/2"],
            opts=reencode(ctx), phase=Phase.CROP,
            notes=["square -> largest centred square"],
        )
    if op.shape == "circle":
        return make_result(
            vf=["crop='min(iw,ih)':'min(iw,ih)':(iw-ow)/2:(ih-oh)/2", CIRCLE_MASK],
            opts=["-c:v", "libvpx-vp9", "-pix_fmt", "yuva420p", "-b:v", "0", "-crf", "30",
                  "-c:a", "libopus"],
            phase=Phase.CROP,
            notes=["circle -> centred square with a transparent round mask (VP9 alpha in webm)"],
        )
    w, h = op.width, op.height
    if op.x is not None:
        crop = f"crop={w}:{h}:{op.x}:{op.y}"
        note = f"{w}x{h} at {op.x},{op.y}"
    else:
        crop = f"crop=min({w}\\,iw):min({h}\\,ih):(iw-min({w}\\,iw))/2:(ih-min({h}\\,ih))/2"
        note = f"{w}x{h} centred, clamped to the frame"
    return make_result(vf=[crop], opts=reencode(ctx), phase=Phase.CROP, notes=[note])


def _c_rotate(op: Rotate, ctx: CompileContext):
    ctx.require_video(op.input, op.verb)
    f = rotate_filter(op.degrees)
    return make_result(vf=[f], opts=reencode(ctx, copy_audio=True), phase=Phase.ROTATE,
                       notes=[f"{op.degrees} degrees clockwise -> {f}"])


def _c_flip(op: Flip, ctx: CompileContext):
    ctx.require_video(op.input, op.verb)
    f = "hflip" if op.direction == "horizontal" else "vflip"
    return make_result(vf=[f], opts=reencode(ctx, copy_audio=True), phase=Phase.FLIP)


HANDLERS = {
    Resize: _c_resize,
    Crop: _c_crop,
    Rotate: _c_rotate,
    Flip: _c_flip,
}
