import asyncio
from typing import Dict, Optional, Tuple, Union

from resources.models import Resource
from resources.resolver import ResourceGraphResolver
from rendering.models import DomSnapshot, RGridDom


class DomAssembler:
    """
    Composes a captured page and all of its frames into one render-ready
    RGridDom, plus the flat map of every resource the bundle transitively needs.
    """

    def __init__(self, resolver: ResourceGraphResolver):
        self._resolver = resolver

    async def assemble(self, snapshot: DomSnapshot, user_agent: Optional[str] = None,
                       referer: Optional[str] = None, proxy: Optional[str] = None
                       ) -> Tuple[RGridDom, Dict[str, Union[Resource, RGridDom]]]:
        snapshot = DomSnapshot.from_dict(snapshot)

        resources, *frame_results = await asyncio.gather(
            self._resolver.resolve(
                resource_urls=snapshot.resource_urls,
                pre_resources=snapshot.resource_contents,
                user_agent=user_agent,
                referer=referer,
                proxy=proxy,
            ),
            *(self.assemble(frame, user_agent=user_agent, referer=referer, proxy=proxy)
              for frame in snapshot.frames),
        )

        all_resources = dict(resources)
        for frame, (frame_dom, frame_all_resources) in zip(snapshot.frames, frame_results):
            frame_dom.url = frame.url
            resources[frame.url] = frame_dom
            all_resources[frame.url] = frame_dom
            all_resources.update(frame_all_resources)

        # The page's own resources win over whatever the frames brought in.
        all_resources.update(resources)

        return RGridDom(cdt=snapshot.cdt, resources=resources, url=snapshot.url), all_resources
